from __future__ import annotations

import threading

from docsynth.models.interfaces import TempResourceHandle


class LiveHandleRegistry:
    """Caller-owned set of live working copies, safe to share across tasks and threads."""

    def __init__(self) -> None:
        self._handles: dict[str, TempResourceHandle] = {}
        self._lock = threading.Lock()

    def add(self, handle: TempResourceHandle) -> None:
        with self._lock:
            self._handles[handle.id] = handle

    def discard(self, handle_id: str) -> TempResourceHandle | None:
        with self._lock:
            return self._handles.pop(handle_id, None)

    def get(self, handle_id: str) -> TempResourceHandle | None:
        with self._lock:
            return self._handles.get(handle_id)

    def snapshot(self) -> list[TempResourceHandle]:
        with self._lock:
            return list(self._handles.values())

    def __contains__(self, handle_id: object) -> bool:
        with self._lock:
            return handle_id in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
