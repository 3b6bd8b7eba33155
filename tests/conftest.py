from __future__ import annotations

import os

# Keep test runs from writing daily log files.
os.environ.setdefault("LOG_TO_FILE", "false")

import pytest

from docsynth.models.events import EventCategory, LogLevel


class RecordingLog:
    def __init__(self):
        self.events: list[tuple[LogLevel, EventCategory, str, dict]] = []

    def emit(self, level, category, message, data=None):
        self.events.append((level, category, message, dict(data or {})))

    def messages(self, category: EventCategory | None = None) -> list[str]:
        return [m for _l, c, m, _d in self.events if category is None or c == category]


@pytest.fixture
def recording_log():
    return RecordingLog()
