"""
Status scheduling chat commands.

Registers four commands against a ``CommandRegistry``:

- ``sschedule dd:mm:yyyy hh:mm [caption|text]`` -- schedule a status. The
  content is the replied-to message (text, image or video); without a
  reply the remaining arguments become a text status.
- ``sschedules`` -- list pending schedules, soonest first.
- ``cancelsstatus <id>`` -- cancel a pending schedule.
- ``poststatus [text|caption]`` -- post a status right away.

Validation and not-found errors are answered in the originating chat and
never reach the scheduler.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from statusbot.commands.registry import CommandRegistry, MessageInfo
from statusbot.exceptions import (
    GatewayError,
    NotFoundError,
    PastScheduleError,
    PersistenceError,
    RetryExhaustedError,
    ScheduleFormatError,
    UnsupportedContentError,
    ValidationError,
)
from statusbot.logging import ActivityLogger, LogComponent
from statusbot.scheduling.models import (
    CandidatePayload,
    PendingMedia,
    ScheduleCandidate,
    ScheduledPost,
    StatusKind,
    TextPayload,
)
from statusbot.scheduling.schedule_store import ScheduleStore
from statusbot.utils import TzLike, ensure_aware, format_time_until, now_in, truncate

logger = logging.getLogger(__name__)

DISPLAY_FORMAT = "%d/%m/%Y %H:%M"


# =============================================================================
# REQUEST PARSING
# =============================================================================


@dataclass
class ScheduleRequest:
    """Parsed ``sschedule`` arguments."""

    scheduled_at: datetime
    text: str = ""


def _split_ints(value: str, parts: int) -> List[int]:
    pieces = value.split(":")
    if len(pieces) != parts:
        raise ValueError(value)
    return [int(piece) for piece in pieces]


def parse_schedule_request(
    args: List[str],
    timezone: TzLike = "UTC",
    now: Optional[datetime] = None,
) -> ScheduleRequest:
    """Parse ``dd:mm:yyyy hh:mm [text...]`` into an aware datetime.

    Raises:
        ScheduleFormatError: If the date or time is malformed.
        PastScheduleError: If the time is not strictly in the future.
    """
    if len(args) < 2:
        raise ScheduleFormatError("Missing date and time")

    try:
        day, month, year = _split_ints(args[0], 3)
        hour, minute = _split_ints(args[1], 2)
        naive = datetime(year, month, day, hour, minute)
    except ValueError as exc:
        raise ScheduleFormatError(f"Invalid date/time format: {args[0]} {args[1]}") from exc

    scheduled_at = ensure_aware(naive, timezone)
    now = now or now_in(timezone)
    if scheduled_at <= now:
        raise PastScheduleError("Cannot schedule status updates in the past!")

    return ScheduleRequest(scheduled_at=scheduled_at, text=" ".join(args[2:]).strip())


def media_kind(quoted_message: Dict[str, Any]) -> Optional[StatusKind]:
    """Status kind of a quoted media message, ``None`` for non-media."""
    if "imageMessage" in quoted_message:
        return StatusKind.IMAGE
    if "videoMessage" in quoted_message:
        return StatusKind.VIDEO
    return None


def quoted_text(quoted_message: Dict[str, Any]) -> Optional[str]:
    if quoted_message.get("conversation"):
        return quoted_message["conversation"]
    return (quoted_message.get("extendedTextMessage") or {}).get("text") or None


# =============================================================================
# PLUGIN
# =============================================================================


class StatusScheduleCommands:
    """Chat front-end for the schedule store.

    Args:
        store: The loaded schedule store.
        client: WhatsApp client offering ``send_text``, ``download_media``,
            ``send_text_status`` and ``send_media_status``.
        prefix: Command prefix used in usage hints.
        activity: Optional activity journal.
    """

    PLUGIN_NAME = "statusschedule"

    def __init__(
        self,
        store: ScheduleStore,
        client: Any,
        prefix: str = ".",
        activity: Optional[ActivityLogger] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.prefix = prefix
        self.activity = activity

    @property
    def timezone(self) -> Any:
        return self.store.timezone

    @property
    def timezone_label(self) -> str:
        return str(self.timezone)

    @property
    def usage(self) -> str:
        return (
            f"*Usage:*\n{self.prefix}sschedule dd:mm:yyyy hh:mm [caption]\n\n"
            "*Reply to a message (image/video/text) and use this command,*\n"
            "*or add the status text after the time*\n\n"
            f"*Example:*\n{self.prefix}sschedule 25:12:2026 15:30 Happy New Year!"
        )

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, registry: CommandRegistry) -> None:
        """Register every status command on *registry*."""
        common = {"category": "status", "plugin": self.PLUGIN_NAME, "owner_only": True}
        registry.register_command("sschedule", self.schedule_command, {
            "description": "Schedule a status update (image, video, or text) for a specific time",
            "usage": f"{self.prefix}sschedule dd:mm:yyyy hh:mm [caption] - Reply to media or text message",
            **common,
        })
        registry.register_command("sschedules", self.list_command, {
            "description": "List all pending status schedules",
            "usage": f"{self.prefix}sschedules",
            **common,
        })
        registry.register_command("cancelsstatus", self.cancel_command, {
            "description": "Cancel a scheduled status update",
            "usage": f"{self.prefix}cancelsstatus <schedule_id>",
            **common,
        })
        registry.register_command("poststatus", self.post_now_command, {
            "description": "Post a status update immediately",
            "usage": f"{self.prefix}poststatus <text> | Reply to media with optional caption",
            **common,
        })

    # ------------------------------------------------------------------
    # Content extraction
    # ------------------------------------------------------------------

    async def extract_status_content(
        self,
        quoted_message: Optional[Dict[str, Any]],
        text: str,
    ) -> CandidatePayload:
        """Turn the replied-to message (or the command text) into a payload.

        Raises:
            UnsupportedContentError: If there is nothing postable, or the
                quoted media cannot be downloaded.
        """
        if not quoted_message:
            if text:
                return TextPayload(text=text)
            raise UnsupportedContentError(
                "Please reply to a message (image, video, or text) or add status text!"
            )

        kind = media_kind(quoted_message)
        if kind is not None:
            data = await self._download(quoted_message)
            original_caption = (quoted_message.get(f"{kind.value}Message") or {}).get("caption") or ""
            return PendingMedia(kind=kind, data=data, caption=text or original_caption)

        body = quoted_text(quoted_message)
        if body:
            return TextPayload(text=body)

        raise UnsupportedContentError("Unable to extract content from the replied message!")

    async def parse_schedule_request(self, message: MessageInfo) -> ScheduleCandidate:
        """Build a store candidate from an ``sschedule`` message.

        Raises:
            ValidationError: On malformed or past times and missing content.
        """
        request = parse_schedule_request(message.args, self.timezone, self.store.now())
        payload = await self.extract_status_content(message.quoted_message, request.text)
        return ScheduleCandidate(
            scheduled_at=request.scheduled_at,
            payload=payload,
            from_jid=message.chat_jid,
            created_by=message.sender_name,
        )

    async def _download(self, quoted_message: Dict[str, Any]) -> bytes:
        try:
            data = await self.client.download_media({"key": {}, "message": quoted_message})
        except (RetryExhaustedError, GatewayError) as exc:
            logger.error("[COMMANDS] Error downloading quoted media: %s", exc)
            raise UnsupportedContentError("Failed to download media for scheduling.") from exc
        if not data:
            raise UnsupportedContentError("Failed to download media for scheduling.")
        return data

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def schedule_command(self, message: MessageInfo) -> None:
        """``sschedule dd:mm:yyyy hh:mm [caption|text]``"""
        if len(message.args) < 2:
            await self._reply(message, f"❌ Invalid format!\n\n{self.usage}")
            return

        try:
            candidate = await self.parse_schedule_request(message)
            post = await self.store.add(candidate)
        except PastScheduleError:
            await self._reply(message, "❌ Cannot schedule status updates in the past!")
            return
        except ScheduleFormatError as exc:
            await self._reply(
                message,
                f"❌ Error creating status schedule: {exc}\n\n"
                "*Please check your date/time format:*\ndd:mm:yyyy hh:mm (e.g., 25:12:2026 15:30)",
            )
            return
        except ValidationError as exc:
            await self._reply(message, f"❌ {exc}\n\n{self.usage}")
            return
        except PersistenceError as exc:
            logger.error("[COMMANDS] Could not store status media: %s", exc)
            await self._reply(message, "❌ Could not save the media for this schedule. Please try again.")
            return

        if self.activity is not None:
            await self.activity.info(
                LogComponent.COMMANDS,
                "Status scheduled",
                schedule_id=post.id,
                data={"type": post.kind.value, "time": post.scheduled_at.isoformat(), "by": post.created_by},
            )
        await self._reply(message, self.format_confirmation(post))

    async def list_command(self, message: MessageInfo) -> None:
        """``sschedules``"""
        await self._reply(message, self.format_pending(self.store.list_pending()))

    async def cancel_command(self, message: MessageInfo) -> None:
        """``cancelsstatus <id>``"""
        if not message.args:
            await self._reply(
                message,
                f"❌ Please provide a schedule ID!\n\nUsage: {self.prefix}cancelsstatus <schedule_id>",
            )
            return

        schedule_id = message.args[0]
        try:
            post = await self.store.cancel(schedule_id)
        except NotFoundError:
            await self._reply(
                message,
                f"❌ Status schedule ID not found: {schedule_id}\n\n"
                f"Use {self.prefix}sschedules to see all pending status schedules.",
            )
            return

        if self.activity is not None:
            await self.activity.info(LogComponent.COMMANDS, "Status schedule cancelled", schedule_id=post.id)
        await self._reply(
            message,
            "✅ *Status Schedule Cancelled Successfully!*\n\n"
            f"📅 *Was scheduled for:* {self._display_time(post.scheduled_at)} ({self.timezone_label} Time)\n"
            f"📱 *Type:* {post.kind.label}",
        )

    async def post_now_command(self, message: MessageInfo) -> None:
        """``poststatus [text|caption]``"""
        text = " ".join(message.args).strip()
        try:
            payload = await self.extract_status_content(message.quoted_message, text)
        except UnsupportedContentError as exc:
            await self._reply(
                message,
                f"❌ {exc}\n\n*For text status:*\n{self.prefix}poststatus Your status text here\n\n"
                f"*For media status:*\nReply to an image/video with:\n{self.prefix}poststatus [optional caption]",
            )
            return

        try:
            if isinstance(payload, PendingMedia):
                await self.client.send_media_status(payload.kind, payload.data, payload.caption)
            else:
                await self.client.send_text_status(payload.text)
        except Exception as exc:
            logger.error("[COMMANDS] Immediate status post failed: %s", exc)
            await self._reply(message, f"❌ Failed to post {payload.kind.value} status. Please try again.")
            return

        if isinstance(payload, PendingMedia):
            reply = f"✅ *{payload.kind.value.upper()} STATUS POSTED!*"
            if payload.caption:
                reply += f"\n\n💬 Caption: {payload.caption}"
        else:
            reply = f"✅ *TEXT STATUS POSTED!*\n\n📝 \"{payload.text}\""
        await self._reply(message, reply)

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def _display_time(self, when: datetime) -> str:
        return when.astimezone(self.timezone).strftime(DISPLAY_FORMAT)

    def _preview(self, post: ScheduledPost, limit: int) -> Tuple[str, str]:
        if post.text is not None:
            return "Content", truncate(post.text, limit)
        return "Caption", post.caption or "No caption"

    def format_confirmation(self, post: ScheduledPost, now: Optional[datetime] = None) -> str:
        """Reply text for a newly created schedule."""
        if post.text is not None:
            content = truncate(post.text, 50)
        else:
            content = post.caption or "Media with no caption"
        return (
            "✅ *Status Scheduled Successfully!*\n\n"
            f"📅 *Date & Time:* {self._display_time(post.scheduled_at)} ({self.timezone_label} Time)\n"
            f"📱 *Type:* {post.kind.label}\n"
            f"📝 *Content:* {content}\n"
            f"🆔 *Schedule ID:* {post.id}\n\n"
            f"⏰ *Time until post:* {format_time_until(post.scheduled_at, now or self.store.now())}"
        )

    def format_pending(self, posts: List[ScheduledPost], now: Optional[datetime] = None) -> str:
        """Reply text listing *posts* in the given order."""
        if not posts:
            return "📱 No pending status schedules found."

        now = now or self.store.now()
        lines = [f"📱 *Pending Status Schedules ({len(posts)})*\n"]
        for post in posts:
            label, preview = self._preview(post, 30)
            lines.append(f"🆔 *ID:* {post.id}")
            lines.append(f"📅 *Time:* {self._display_time(post.scheduled_at)} ({self.timezone_label})")
            lines.append(f"📱 *Type:* {post.kind.label}")
            lines.append(f"📝 *{label}:* {preview}")
            lines.append(f"⏰ *Status:* {format_time_until(post.scheduled_at, now)}")
            lines.append("─────────────────")
        return "\n".join(lines)

    async def _reply(self, message: MessageInfo, text: str) -> None:
        await self.client.send_text(message.chat_jid, text)


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ScheduleRequest",
    "parse_schedule_request",
    "media_kind",
    "quoted_text",
    "StatusScheduleCommands",
]
