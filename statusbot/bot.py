"""
Bot process wiring: store, scheduler, commands and the inbound message loop.

``StatusBot`` owns one instance of every component and hands them to each
other explicitly.  ``run()`` loads the store, starts the scheduler as a
background task and long-polls the gateway for commands until stopped.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from statusbot.commands import CommandRegistry, MessageInfo, StatusScheduleCommands
from statusbot.config import Settings
from statusbot.exceptions import GatewayError, RetryExhaustedError
from statusbot.logging import ActivityLogger, LogComponent
from statusbot.scheduling import ScheduleStore, StatusScheduler
from statusbot.tools import STATUS_BROADCAST_JID, OwnerNotifier, WhatsAppGatewayClient

logger = logging.getLogger(__name__)


class StatusBot:
    """The long-running bot process.

    Args:
        settings: Loaded settings.
        client: WhatsApp gateway client (send capability + inbound polling).
        store: Schedule store (not yet loaded).
        activity: Activity journal.
    """

    # Pause after a failed poll before trying again (seconds)
    POLL_ERROR_BACKOFF: float = 5.0

    def __init__(
        self,
        settings: Settings,
        client: WhatsAppGatewayClient,
        store: ScheduleStore,
        activity: ActivityLogger,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store
        self.activity = activity

        self.scheduler = StatusScheduler(
            store,
            client,
            activity=activity,
            check_interval_seconds=settings.check_interval_seconds,
            startup_delay_seconds=settings.startup_delay_seconds,
        )
        self.registry = CommandRegistry(
            settings.command_prefix, replier=client, owner_jid=settings.owner_jid
        )
        self.commands = StatusScheduleCommands(
            store, client, prefix=settings.command_prefix, activity=activity
        )
        self.commands.register(self.registry)

        self._running = False
        self._scheduler_task: Optional["asyncio.Task[None]"] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StatusBot":
        """Build every component from *settings*."""
        client = WhatsAppGatewayClient(
            settings.gateway_url,
            token=settings.gateway_token,
            bot_jid=settings.bot_jid,
            timeout=settings.gateway_timeout_seconds,
        )
        owner_jid = settings.owner_jid
        notifier = OwnerNotifier(client, owner_jid) if owner_jid else None
        activity = ActivityLogger(settings.log_path, notifier=notifier)
        store = ScheduleStore(settings.schedule_path, settings.media_path, settings.timezone)
        return cls(settings, client, store, activity)

    # ================================================================
    # LIFECYCLE
    # ================================================================

    async def start(self) -> None:
        """Load pending schedules and start the scheduler task."""
        loaded = await self.store.load()
        await self.activity.info(
            LogComponent.STARTUP,
            "Status scheduler bot starting",
            data={"pending": loaded, "timezone": self.settings.timezone},
        )
        self._running = True
        self._scheduler_task = asyncio.create_task(self.scheduler.start())

    async def stop(self) -> None:
        """Stop polling and the scheduler, then flush the journal."""
        self._running = False
        await self.scheduler.stop()
        if self._scheduler_task is not None:
            self._scheduler_task.cancel()
            await asyncio.gather(self._scheduler_task, return_exceptions=True)
            self._scheduler_task = None
        await self.activity.flush()
        logger.info("Status scheduler bot stopped")

    async def run(self) -> None:
        """Start, then dispatch inbound commands until :meth:`stop`."""
        await self.start()
        try:
            while self._running:
                await self.poll_once()
        finally:
            await self.stop()

    # ================================================================
    # INBOUND MESSAGES
    # ================================================================

    async def poll_once(self) -> int:
        """Fetch one batch of updates and dispatch them.

        Returns:
            Number of updates that triggered a command.
        """
        try:
            updates = await self.client.fetch_updates(self.settings.poll_timeout_seconds)
        except (RetryExhaustedError, GatewayError) as exc:
            logger.error("[GATEWAY] Polling failed: %s", exc)
            await asyncio.sleep(self.POLL_ERROR_BACKOFF)
            return 0

        handled = 0
        for update in updates:
            if await self.handle_update(update):
                handled += 1
        return handled

    async def handle_update(self, update: Dict[str, Any]) -> bool:
        """Dispatch one raw gateway update; malformed updates are skipped."""
        if not isinstance(update, dict):
            logger.warning("[GATEWAY] Skipping malformed update: %r", update)
            return False
        message = MessageInfo.from_update(update)
        if not message.chat_jid or message.chat_jid == STATUS_BROADCAST_JID:
            return False
        return await self.registry.dispatch(message)


__all__ = [
    "StatusBot",
]
