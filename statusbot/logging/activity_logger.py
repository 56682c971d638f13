"""Activity journal with file output and optional owner notifications.

``ActivityLogger`` records structured entries for the events a bot owner
cares about (status scheduled, posted, failed, cancelled) to JSON-lines
files via ``aiofiles``, mirrors them to the stdlib ``logging`` tree, keeps
a ring buffer for ``get_recent()`` queries and forwards WARNING+ entries
to an optional notifier (the owner's WhatsApp chat).

The logger is constructed once at startup and passed to the components
that use it; it is not a module-level singleton.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import aiofiles

from statusbot.logging.models import LogComponent, LogEntry, LogLevel
from statusbot.utils import utc_now

logger = logging.getLogger(__name__)


class ActivityLogger:
    """Structured activity journal.

    Parameters:
        log_dir: Directory for journal files (created if missing).
        notifier: Optional object with an async ``send_log(text)`` method.
        notify_min_level: Minimum level forwarded to the notifier.
        max_recent: Size of the in-memory ring buffer.
    """

    def __init__(
        self,
        log_dir: Union[str, Path] = "logs",
        notifier: Any = None,
        notify_min_level: LogLevel = LogLevel.WARNING,
        max_recent: int = 500,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.notifier = notifier
        self.notify_min_level = notify_min_level

        self._main_log = self.log_dir / "activity.log"
        self._error_log = self.log_dir / "errors.log"

        self._recent: List[LogEntry] = []
        self._max_recent = max_recent

        # Keep references so fire-and-forget notifications are not collected
        self._pending_tasks: Set["asyncio.Task[None]"] = set()

    # ------------------------------------------------------------------
    # Core log method
    # ------------------------------------------------------------------

    async def log(
        self,
        level: LogLevel,
        component: LogComponent,
        message: str,
        schedule_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        duration_ms: Optional[int] = None,
    ) -> LogEntry:
        """Record a structured entry and return it."""
        entry = LogEntry(
            timestamp=utc_now(),
            level=level,
            component=component,
            message=message,
            schedule_id=schedule_id,
            data=data or {},
            duration_ms=duration_ms,
        )
        if error is not None:
            entry.error_type = type(error).__name__
            entry.error_message = str(error)

        self._recent.append(entry)
        if len(self._recent) > self._max_recent:
            self._recent.pop(0)

        logging.getLogger(f"statusbot.{component.value}").log(
            level.value, "%s", entry.to_readable()
        )

        try:
            await self._write_to_file(entry)
        except OSError:
            logger.exception("[ACTIVITY] Failed to write journal entry to %s", self.log_dir)

        if self.notifier is not None and level.value >= self.notify_min_level.value:
            task = asyncio.create_task(self._notify(entry))
            self._pending_tasks.add(task)
            task.add_done_callback(self._pending_tasks.discard)

        return entry

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    async def debug(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        """Log at DEBUG level."""
        return await self.log(LogLevel.DEBUG, component, message, **kwargs)

    async def info(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        """Log at INFO level."""
        return await self.log(LogLevel.INFO, component, message, **kwargs)

    async def warning(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        """Log at WARNING level."""
        return await self.log(LogLevel.WARNING, component, message, **kwargs)

    async def error(self, component: LogComponent, message: str, **kwargs: Any) -> LogEntry:
        """Log at ERROR level."""
        return await self.log(LogLevel.ERROR, component, message, **kwargs)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_recent(
        self,
        limit: int = 20,
        level: Optional[LogLevel] = None,
        component: Optional[LogComponent] = None,
        schedule_id: Optional[str] = None,
    ) -> List[LogEntry]:
        """Return recent entries from the in-memory ring buffer."""
        entries = self._recent.copy()

        if level is not None:
            entries = [e for e in entries if e.level == level]
        if component is not None:
            entries = [e for e in entries if e.component == component]
        if schedule_id is not None:
            entries = [e for e in entries if e.schedule_id == schedule_id]

        return entries[-limit:]

    async def flush(self) -> None:
        """Wait for pending notifier tasks. Call before shutdown."""
        if self._pending_tasks:
            await asyncio.gather(*self._pending_tasks, return_exceptions=True)
            self._pending_tasks.clear()

    # ------------------------------------------------------------------
    # Private output methods
    # ------------------------------------------------------------------

    async def _write_to_file(self, entry: LogEntry) -> None:
        """Append the entry to ``activity.log`` (and ``errors.log`` for ERROR+)."""
        json_line = entry.to_json() + "\n"

        async with aiofiles.open(self._main_log, "a", encoding="utf-8") as f:
            await f.write(json_line)

        if entry.level.value >= LogLevel.ERROR.value:
            async with aiofiles.open(self._error_log, "a", encoding="utf-8") as f:
                await f.write(json_line)

    async def _notify(self, entry: LogEntry) -> None:
        try:
            await self.notifier.send_log(entry.to_readable())
        except Exception:
            logger.warning("[ACTIVITY] Owner notification failed", exc_info=True)
