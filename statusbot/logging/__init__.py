"""Activity journal for the status scheduler bot."""
from statusbot.logging.models import LogLevel, LogComponent, LogEntry
from statusbot.logging.activity_logger import ActivityLogger

__all__ = [
    "LogLevel", "LogComponent", "LogEntry",
    "ActivityLogger",
]
