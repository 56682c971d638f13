"""
Background scheduler that posts status updates at their scheduled times.

``StatusScheduler`` drives periodic evaluation of the ``ScheduleStore``.
All of the work of one evaluation lives in :meth:`StatusScheduler.tick`,
which any driver can call: the built-in asyncio loop (:meth:`start`), a
test advancing simulated time, or an external cron.

Delivery is at-most-once: a due post is removed from the store before it
is sent and is never re-inserted, whether the send succeeds or fails.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Protocol

from statusbot.exceptions import SendFailure
from statusbot.logging import ActivityLogger, LogComponent
from statusbot.scheduling.models import (
    ScheduledPost,
    SchedulerState,
    StatusKind,
    TickResult,
)
from statusbot.scheduling.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class StatusSender(Protocol):
    """The external capability used to publish a status update."""

    async def send_text_status(self, text: str) -> None:
        ...

    async def send_media_status(self, kind: StatusKind, data: bytes, caption: str = "") -> None:
        ...


class StatusScheduler:
    """Posts due schedules through a ``StatusSender``.

    Each tick:
    1. Takes every due post out of the store (oldest first).
    2. Sends them one at a time, awaiting each send.
    3. Deletes each post's media whatever the outcome.
    4. Saves the store once if anything was due.

    A failing send is logged and does not stop the remaining posts of
    the tick.  Ticks never overlap: a tick requested while another is
    still sending returns immediately with ``skipped=True``.

    Args:
        store: The loaded schedule store.
        sender: Capability that publishes status updates.
        activity: Optional activity journal for delivery outcomes.
        check_interval_seconds: Delay between ticks of :meth:`start`.
        startup_delay_seconds: Delay before the first tick of :meth:`start`.
    """

    def __init__(
        self,
        store: ScheduleStore,
        sender: StatusSender,
        activity: Optional[ActivityLogger] = None,
        check_interval_seconds: float = 60.0,
        startup_delay_seconds: float = 5.0,
    ) -> None:
        self.store = store
        self.sender = sender
        self.activity = activity
        self.check_interval_seconds = check_interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self._state = SchedulerState.IDLE
        self._running = False
        # Created in start() so it binds to the running loop
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    # ================================================================
    # LIFECYCLE
    # ================================================================

    async def start(self) -> None:
        """Run ticks until :meth:`stop` is called or the task is cancelled.

        The first tick runs after ``startup_delay_seconds`` so schedules
        already due at startup do not wait a full interval.
        """
        self._running = True
        logger.info(
            "[SCHEDULER] Status scheduler started (interval=%ss, startup delay=%ss)",
            self.check_interval_seconds,
            self.startup_delay_seconds,
        )

        self._stop_event = asyncio.Event()
        delay = self.startup_delay_seconds
        while self._running:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                logger.info("[SCHEDULER] Status scheduler sleep cancelled")
                break
            delay = self.check_interval_seconds

            if not self._running or self._stop_event.is_set():
                break

            try:
                await self.tick()
            except asyncio.CancelledError:
                logger.info("[SCHEDULER] Status scheduler cancelled")
                break
            except Exception:
                logger.exception("[SCHEDULER] Unexpected error in status scheduler loop")

        self._running = False
        logger.info("[SCHEDULER] Status scheduler stopped")

    async def stop(self) -> None:
        """End the loop in :meth:`start`, waking it from its sleep.

        A tick already sending runs to completion first.
        """
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        logger.info("[SCHEDULER] Status scheduler stop requested")

    # ================================================================
    # TICK
    # ================================================================

    async def tick(self, now: Optional[datetime] = None) -> TickResult:
        """Post every schedule due at *now* (defaults to the current time)."""
        now = now or self.store.now()

        if self._state is SchedulerState.SCANNING:
            logger.debug("[SCHEDULER] Previous tick still running, skipping")
            return TickResult(now=now, skipped=True)

        self._state = SchedulerState.SCANNING
        result = TickResult(now=now)
        try:
            due = self.store.take_due(now)
            if not due:
                return result

            logger.info("[SCHEDULER] Found %d status schedules due", len(due))

            for post in due:
                result.attempted.append(post.id)
                try:
                    await self._post(post)
                except Exception as exc:
                    result.failed.append(post.id)
                    logger.error("[SCHEDULER] Failed to post scheduled status %s: %s", post.id, exc)
                    if self.activity is not None:
                        await self.activity.error(
                            LogComponent.SCHEDULER,
                            "Scheduled status failed and was removed",
                            schedule_id=post.id,
                            data={"type": post.kind.value},
                            error=exc,
                        )
                else:
                    result.sent.append(post.id)
                    logger.info("[SCHEDULER] Posted scheduled status %s", post.id)
                    if self.activity is not None:
                        await self.activity.info(
                            LogComponent.SCHEDULER,
                            "Scheduled status posted",
                            schedule_id=post.id,
                            data={"type": post.kind.value},
                        )
                finally:
                    await self.store.discard_media(post)

            await self.store.save()
            return result
        finally:
            self._state = SchedulerState.IDLE

    # ================================================================
    # PUBLISHING
    # ================================================================

    async def _post(self, post: ScheduledPost) -> None:
        """Send one post through the sender.

        Raises:
            SendFailure: If the media cannot be read or the sender raises.
        """
        try:
            if post.kind is StatusKind.TEXT:
                await self.sender.send_text_status(post.text or "")
            else:
                data = await self.store.read_media(post)
                await self.sender.send_media_status(post.kind, data, post.caption or "")
        except SendFailure:
            raise
        except Exception as exc:
            raise SendFailure(post.id, str(exc)) from exc


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "StatusSender",
    "StatusScheduler",
]
