from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]


_LEVEL_RANK = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARNING: 30,
    LogLevel.ERROR: 40,
}


class EventCategory(str, Enum):
    STRATEGY = "strategy"
    ACQUIRE = "acquire"
    EXTRACT = "extract"
    SUBSTITUTE = "substitute"
    RESOURCES = "resources"
    RENDER = "render"
    GENERATION = "generation"


@dataclass
class ObservabilityEvent:
    level: LogLevel
    category: EventCategory
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def format(self) -> str:
        return json.dumps(
            {
                "timestamp": self.timestamp.isoformat(),
                "level": self.level.value,
                "category": self.category.value,
                "message": self.message,
                "data": self.data,
            },
            default=str,
        )
