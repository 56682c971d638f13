"""Logging data models: LogLevel, LogComponent, LogEntry."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """Log levels with numeric values for severity comparison.

    Values mirror the stdlib ``logging`` constants so entries can be
    forwarded to a ``logging.Logger`` without translation.
    """

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def name_str(self) -> str:
        """Get lowercase name for display/serialization."""
        return self.name.lower()


class LogComponent(Enum):
    """All bot components that write to the activity journal."""

    STARTUP = "startup"
    CONFIG = "config"
    STORE = "store"
    SCHEDULER = "scheduler"
    COMMANDS = "commands"
    GATEWAY = "gateway"


@dataclass
class LogEntry:
    """Structured activity entry.

    Represents a single event with the schedule it concerns (if any),
    optional error details and timing.
    """

    # Required fields
    timestamp: datetime
    level: LogLevel
    component: LogComponent
    message: str

    # Context
    schedule_id: Optional[str] = None

    # Additional data
    data: Dict[str, Any] = field(default_factory=dict)

    # Error details
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    # Performance
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a plain dictionary."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "level_name": self.level.name_str,
            "component": self.component.value,
            "message": self.message,
            "schedule_id": self.schedule_id,
            "data": self.data,
            "error_type": self.error_type,
            "error_message": self.error_message,
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        """Serialize to a single JSON line for file logging."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        """Human-readable format for chat notifications."""
        time_str = self.timestamp.strftime("%H:%M:%S")
        level_indicators = {
            LogLevel.DEBUG: "[DEBUG]",
            LogLevel.INFO: "[INFO]",
            LogLevel.WARNING: "[WARN]",
            LogLevel.ERROR: "[ERROR]",
            LogLevel.CRITICAL: "[CRIT]",
        }
        indicator = level_indicators.get(self.level, "[???]")
        msg = f"{indicator} [{time_str}] [{self.component.value}] {self.message}"
        if self.schedule_id:
            msg += f" (schedule {self.schedule_id})"
        if self.error_message:
            msg += f": {self.error_message}"
        return msg
