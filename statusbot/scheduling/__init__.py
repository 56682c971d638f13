"""Scheduling subsystem: pending status store and the posting loop."""

from statusbot.scheduling.models import (
    MediaPayload,
    PendingMedia,
    ScheduleCandidate,
    ScheduledPost,
    SchedulerState,
    StatusKind,
    TextPayload,
    TickResult,
)
from statusbot.scheduling.schedule_store import ScheduleStore
from statusbot.scheduling.status_scheduler import StatusScheduler, StatusSender

__all__ = [
    "MediaPayload",
    "PendingMedia",
    "ScheduleCandidate",
    "ScheduledPost",
    "SchedulerState",
    "StatusKind",
    "TextPayload",
    "TickResult",
    "ScheduleStore",
    "StatusScheduler",
    "StatusSender",
]
