"""
Scheduling data models: StatusKind, payload variants, ScheduledPost.

Defines the core data structures used by the scheduling subsystem:
- ``StatusKind``: Text, image or video status.
- ``TextPayload`` / ``MediaPayload``: Tagged payload variants. A post holds
  exactly one of them, so "text xor media" is carried by the type.
- ``PendingMedia``: Raw media bytes of a not-yet-stored candidate.
- ``ScheduledPost``: A pending status update as kept by the store.
- ``ScheduleCandidate``: An unvalidated creation request.
- ``SchedulerState`` / ``TickResult``: Scheduler bookkeeping.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from statusbot.utils import ensure_aware, utc_now, TzLike


# =============================================================================
# STATUS KIND
# =============================================================================


class StatusKind(Enum):
    """Kind of status update, stored as the record's ``type`` field."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"

    @property
    def is_media(self) -> bool:
        return self in {StatusKind.IMAGE, StatusKind.VIDEO}

    @property
    def extension(self) -> str:
        """File extension used for snapshotted media of this kind."""
        if self is StatusKind.IMAGE:
            return ".jpg"
        if self is StatusKind.VIDEO:
            return ".mp4"
        raise ValueError("Text statuses have no media file")

    @property
    def label(self) -> str:
        """Display label, e.g. ``"Image Status"``."""
        return f"{self.value.capitalize()} Status"


# =============================================================================
# PAYLOAD VARIANTS
# =============================================================================


@dataclass(frozen=True)
class TextPayload:
    """Text status content."""

    text: str

    @property
    def kind(self) -> StatusKind:
        return StatusKind.TEXT


@dataclass(frozen=True)
class MediaPayload:
    """Image or video status stored on disk at ``media_path``."""

    kind: StatusKind
    media_path: str
    caption: str = ""

    def __post_init__(self) -> None:
        if not self.kind.is_media:
            raise ValueError(f"MediaPayload requires a media kind, got '{self.kind.value}'")


@dataclass(frozen=True)
class PendingMedia:
    """Downloaded media bytes that the store will snapshot to disk."""

    kind: StatusKind
    data: bytes
    caption: str = ""

    def __post_init__(self) -> None:
        if not self.kind.is_media:
            raise ValueError(f"PendingMedia requires a media kind, got '{self.kind.value}'")


StatusPayload = Union[TextPayload, MediaPayload]
CandidatePayload = Union[TextPayload, PendingMedia]


# =============================================================================
# TIMESTAMP HELPERS
# =============================================================================


def parse_timestamp(value: str, tz: TzLike = "UTC") -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into *tz*."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    return ensure_aware(datetime.fromisoformat(text), tz)


# =============================================================================
# SCHEDULED POST
# =============================================================================


@dataclass
class ScheduledPost:
    """A status update waiting for its scheduled time.

    Attributes:
        id: Decimal string assigned from the store's counter.
        scheduled_at: Earliest moment the post may fire (timezone-aware).
        payload: Exactly one of ``TextPayload`` / ``MediaPayload``.
        from_jid: Chat the schedule request came from.
        created_by: User that created the schedule.
        created_at: When the schedule was created.
    """

    id: str
    scheduled_at: datetime
    payload: StatusPayload
    from_jid: str = ""
    created_by: str = "Unknown"
    created_at: datetime = field(default_factory=utc_now)

    @property
    def kind(self) -> StatusKind:
        return self.payload.kind

    @property
    def text(self) -> Optional[str]:
        return self.payload.text if isinstance(self.payload, TextPayload) else None

    @property
    def media_path(self) -> Optional[str]:
        return self.payload.media_path if isinstance(self.payload, MediaPayload) else None

    @property
    def caption(self) -> Optional[str]:
        return self.payload.caption if isinstance(self.payload, MediaPayload) else None

    @property
    def sort_key(self) -> tuple:
        """Oldest first; equal times fall back to creation (id) order."""
        return (self.scheduled_at, _id_order(self.id))

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the persisted JSON record layout."""
        return {
            "id": self.id,
            "time": self.scheduled_at.isoformat(),
            "type": self.kind.value,
            "content": self.text,
            "caption": self.caption,
            "mediaPath": self.media_path,
            "fromJid": self.from_jid,
            "createdAt": self.created_at.isoformat(),
            "createdBy": self.created_by,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], tz: TzLike = "UTC") -> "ScheduledPost":
        """Rebuild a post from a persisted record.

        ``time`` is re-derived in *tz*.

        Raises:
            ValueError: If the record is incomplete or inconsistent.
        """
        if not isinstance(record, dict):
            raise ValueError(f"Schedule record must be an object, got {type(record).__name__}")

        schedule_id = record.get("id")
        if schedule_id is None or str(schedule_id) == "":
            raise ValueError("Schedule record has no id")

        kind = StatusKind(record.get("type"))
        payload: StatusPayload
        if kind is StatusKind.TEXT:
            content = record.get("content")
            if not isinstance(content, str) or not content:
                raise ValueError(f"Text schedule {schedule_id} has no content")
            payload = TextPayload(text=content)
        else:
            media_path = record.get("mediaPath")
            if not isinstance(media_path, str) or not media_path:
                raise ValueError(f"{kind.value} schedule {schedule_id} has no mediaPath")
            payload = MediaPayload(
                kind=kind,
                media_path=media_path,
                caption=record.get("caption") or "",
            )

        created_at = utc_now()
        if record.get("createdAt"):
            created_at = parse_timestamp(record["createdAt"])

        return cls(
            id=str(schedule_id),
            scheduled_at=parse_timestamp(record.get("time"), tz),
            payload=payload,
            from_jid=record.get("fromJid") or "",
            created_by=record.get("createdBy") or "Unknown",
            created_at=created_at,
        )


def _id_order(schedule_id: str) -> int:
    try:
        return int(schedule_id)
    except ValueError:
        return 0


# =============================================================================
# SCHEDULE CANDIDATE
# =============================================================================


@dataclass
class ScheduleCandidate:
    """A creation request handed to ``ScheduleStore.add``."""

    scheduled_at: datetime
    payload: CandidatePayload
    from_jid: str = ""
    created_by: str = "Unknown"

    @property
    def kind(self) -> StatusKind:
        return self.payload.kind


# =============================================================================
# SCHEDULER BOOKKEEPING
# =============================================================================


class SchedulerState(Enum):
    """The scheduler is either waiting for a tick or scanning due posts."""

    IDLE = "idle"
    SCANNING = "scanning"


@dataclass
class TickResult:
    """Outcome of one scheduler tick.

    Attributes:
        now: Evaluation time used for the tick.
        attempted: Ids handed to the sender, in send order.
        sent: Ids posted successfully.
        failed: Ids whose send raised.
        skipped: ``True`` when the tick did not run because another
            tick was still in flight.
    """

    now: datetime
    attempted: List[str] = field(default_factory=list)
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: bool = False


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "StatusKind",
    "TextPayload",
    "MediaPayload",
    "PendingMedia",
    "StatusPayload",
    "CandidatePayload",
    "ScheduledPost",
    "ScheduleCandidate",
    "SchedulerState",
    "TickResult",
    "parse_timestamp",
]
