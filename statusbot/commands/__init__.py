"""Chat command surface: registry and the status scheduling commands."""

from statusbot.commands.registry import CommandRegistry, CommandSpec, MessageInfo, is_owner
from statusbot.commands.status_schedule import (
    ScheduleRequest,
    StatusScheduleCommands,
    parse_schedule_request,
)

__all__ = [
    "CommandRegistry",
    "CommandSpec",
    "MessageInfo",
    "is_owner",
    "ScheduleRequest",
    "StatusScheduleCommands",
    "parse_schedule_request",
]
