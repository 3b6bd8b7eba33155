"""ObservabilityLog collaborator: structured engine events.

The engine only ever emits through :func:`safe_emit`, so a broken sink can
never change the outcome of an acquisition or a generation.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime
from typing import Any, Protocol

from loguru import logger

from docsynth.models.events import EventCategory, LogLevel, ObservabilityEvent
from docsynth.services.logger import log_event


class ObservabilityLog(Protocol):
    def emit(
        self,
        level: LogLevel,
        category: EventCategory,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None: ...


class LoguruObservabilityLog:
    """Default sink: forwards every event to loguru."""

    def emit(
        self,
        level: LogLevel,
        category: EventCategory,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        log_event(ObservabilityEvent(level=level, category=category, message=message, data=dict(data or {})))


class BufferedObservabilityLog:
    """Bounded in-memory event buffer, newest first."""

    def __init__(self, capacity: int = 1000, forward: ObservabilityLog | None = None):
        self.capacity = max(int(capacity), 1)
        self._events: deque[ObservabilityEvent] = deque(maxlen=self.capacity)
        self._lock = threading.Lock()
        self._forward = forward

    def emit(
        self,
        level: LogLevel,
        category: EventCategory,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        event = ObservabilityEvent(level=level, category=category, message=message, data=dict(data or {}))
        with self._lock:
            self._events.appendleft(event)
        if self._forward is not None:
            self._forward.emit(level, category, message, event.data)

    def get_events(
        self,
        *,
        level: LogLevel | None = None,
        category: EventCategory | None = None,
        since: datetime | None = None,
    ) -> list[ObservabilityEvent]:
        with self._lock:
            events = list(self._events)
        if level is not None:
            events = [e for e in events if e.level.rank >= level.rank]
        if category is not None:
            events = [e for e in events if e.category == category]
        if since is not None:
            events = [e for e in events if e.timestamp >= since]
        return events

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def safe_emit(
    log: ObservabilityLog | None,
    level: LogLevel,
    category: EventCategory,
    message: str,
    data: dict[str, Any] | None = None,
) -> None:
    if log is None:
        return
    try:
        log.emit(level, category, message, data or {})
    except Exception as exc:
        # Delivery failures are reported on the process logger and go no further.
        logger.warning(f"Observability sink failed for [{category.value}] {message}: {exc}")


default_log: ObservabilityLog = LoguruObservabilityLog()
