"""
Durable store of pending status schedules.

``ScheduleStore`` owns the in-memory map of ``ScheduledPost`` entries,
the JSON schedule file and the media directory holding snapshotted
images/videos.  It is constructed once at startup, loaded explicitly via
:meth:`ScheduleStore.load`, and passed to the scheduler and the command
handlers.

Map mutations (``take_due``, the removal step of ``cancel``) are plain
synchronous code, so on a single asyncio loop they never interleave:
whichever runs first wins the entry.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiofiles
import aiofiles.os

from statusbot.exceptions import (
    NotFoundError,
    PastScheduleError,
    PersistenceError,
    UnsupportedContentError,
)
from statusbot.scheduling.models import (
    MediaPayload,
    PendingMedia,
    ScheduleCandidate,
    ScheduledPost,
    StatusPayload,
    TextPayload,
)
from statusbot.utils import TzLike, ensure_aware, get_timezone, now_in, utc_now

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ScheduleStore:
    """Pending status schedules keyed by id, persisted to JSON.

    The schedule file holds a JSON array of records.  The id counter is
    kept in a sidecar ``<name>.meta.json`` file so ids stay unique even
    after the highest-numbered schedules have fired or been cancelled.

    Args:
        schedule_path: JSON file holding the pending schedules.
        media_dir: Directory for snapshotted media files.
        timezone: Timezone used to interpret and re-derive schedule times.
    """

    def __init__(
        self,
        schedule_path: PathLike,
        media_dir: PathLike,
        timezone: TzLike = "UTC",
    ) -> None:
        self.schedule_path = Path(schedule_path)
        self.media_dir = Path(media_dir)
        self.timezone = get_timezone(timezone)
        self.meta_path = self.schedule_path.with_name(self.schedule_path.stem + ".meta.json")

        self._posts: Dict[str, ScheduledPost] = {}
        self.next_id: int = 1

    # ================================================================
    # BASIC ACCESS
    # ================================================================

    def now(self) -> datetime:
        """Current time in the store's timezone."""
        return now_in(self.timezone)

    def __len__(self) -> int:
        return len(self._posts)

    def __contains__(self, schedule_id: object) -> bool:
        return str(schedule_id) in self._posts

    def get(self, schedule_id: str) -> Optional[ScheduledPost]:
        return self._posts.get(str(schedule_id).strip())

    def list_pending(self) -> List[ScheduledPost]:
        """All pending posts, soonest first. Does not mutate the store."""
        return sorted(self._posts.values(), key=lambda p: p.sort_key)

    # ================================================================
    # PERSISTENCE
    # ================================================================

    async def load(self) -> int:
        """Load schedules from disk, dropping any whose time has passed.

        A missing file initializes an empty store and writes an empty
        file.  An unreadable or malformed file is logged and the store
        starts empty; the process keeps running.

        Returns:
            Number of pending schedules loaded.
        """
        await aiofiles.os.makedirs(self.media_dir, exist_ok=True)
        # The counter survives a missing or unreadable schedule file
        self.next_id = max(self.next_id, await self._read_next_id())

        if not await aiofiles.os.path.exists(self.schedule_path):
            await aiofiles.os.makedirs(self.schedule_path.parent, exist_ok=True)
            self._posts = {}
            await self.save()
            logger.info("[STORE] Created empty schedule file at %s", self.schedule_path)
            return 0

        try:
            records = await self._read_records()
        except PersistenceError as exc:
            logger.warning("[STORE] Error loading status schedules: %s", exc)
            self._posts = {}
            return 0

        now = self.now()
        max_id = 0
        posts: Dict[str, ScheduledPost] = {}
        expired: List[ScheduledPost] = []

        for record in records:
            max_id = max(max_id, _numeric_id(record))
            try:
                post = ScheduledPost.from_record(record, self.timezone)
            except (ValueError, TypeError, KeyError) as exc:
                logger.warning("[STORE] Skipping malformed schedule record %r: %s", record, exc)
                continue

            if post.scheduled_at > now:
                posts[post.id] = post
            else:
                expired.append(post)

        self._posts = posts
        self.next_id = max(self.next_id, max_id + 1)

        for post in expired:
            logger.info(
                "[STORE] Dropping missed schedule %s (was due %s)",
                post.id,
                post.scheduled_at.isoformat(),
            )
            await self.discard_media(post)
        if expired:
            await self.save()

        logger.info(
            "[STORE] Loaded %d pending status schedules (next id %d)",
            len(self._posts),
            self.next_id,
        )
        return len(self._posts)

    async def save(self) -> bool:
        """Write every pending schedule to disk.

        The JSON is written to a temporary file and moved over the target
        so a crash mid-write leaves the previous file intact.  Failures
        are logged; the in-memory state stays authoritative.

        Returns:
            ``True`` on success, ``False`` if the write failed.
        """
        records = [post.to_record() for post in self._posts.values()]
        try:
            await self._atomic_write(self.schedule_path, json.dumps(records, indent=2, ensure_ascii=False))
            await self._atomic_write(self.meta_path, json.dumps({"nextId": self.next_id}))
        except PersistenceError as exc:
            logger.error("[STORE] Error saving status schedules: %s", exc)
            return False
        return True

    # ================================================================
    # MUTATIONS
    # ================================================================

    async def add(self, candidate: ScheduleCandidate, now: Optional[datetime] = None) -> ScheduledPost:
        """Validate a candidate, snapshot its media and persist it.

        Args:
            candidate: The creation request.
            now: Evaluation time; defaults to the current time.

        Returns:
            The stored ``ScheduledPost`` carrying its assigned id.

        Raises:
            PastScheduleError: If the time is not strictly in the future.
            UnsupportedContentError: If the payload is empty or unknown.
            PersistenceError: If the media snapshot cannot be written.
        """
        now = now or self.now()
        scheduled_at = ensure_aware(candidate.scheduled_at, self.timezone)

        if scheduled_at <= now:
            raise PastScheduleError("Cannot schedule status updates in the past!")

        payload = candidate.payload
        if isinstance(payload, TextPayload):
            if not payload.text or not payload.text.strip():
                raise UnsupportedContentError("Text status has no content")
            stored: StatusPayload = payload
        elif isinstance(payload, PendingMedia):
            if not payload.data:
                raise UnsupportedContentError(f"{payload.kind.value} status has no media data")
            media_path = await self._write_media(payload)
            stored = MediaPayload(kind=payload.kind, media_path=str(media_path), caption=payload.caption or "")
        else:
            raise UnsupportedContentError(f"Unsupported status content: {type(payload).__name__}")

        schedule_id = str(self.next_id)
        self.next_id += 1

        post = ScheduledPost(
            id=schedule_id,
            scheduled_at=scheduled_at,
            payload=stored,
            from_jid=candidate.from_jid,
            created_by=candidate.created_by,
            created_at=utc_now(),
        )
        self._posts[schedule_id] = post
        await self.save()

        logger.info(
            "[STORE] Status schedule %s created (%s at %s)",
            schedule_id,
            post.kind.value,
            scheduled_at.isoformat(),
        )
        return post

    async def cancel(self, schedule_id: str) -> ScheduledPost:
        """Remove a pending schedule and delete its media.

        Raises:
            NotFoundError: If no pending schedule has this id.
        """
        key = str(schedule_id).strip()
        post = self._posts.pop(key, None)
        if post is None:
            raise NotFoundError(key)

        await self.discard_media(post)
        await self.save()
        logger.info("[STORE] Status schedule %s cancelled", key)
        return post

    def take_due(self, now: datetime) -> List[ScheduledPost]:
        """Remove and return every post due at *now*, oldest first.

        The removal is not persisted; the caller saves once it has
        processed the returned posts.
        """
        due = sorted(
            (post for post in self._posts.values() if post.scheduled_at <= now),
            key=lambda p: p.sort_key,
        )
        for post in due:
            del self._posts[post.id]
        return due

    # ================================================================
    # MEDIA
    # ================================================================

    async def read_media(self, post: ScheduledPost) -> bytes:
        """Read a media post's snapshotted file.

        Raises:
            PersistenceError: If the post has no media or it is unreadable.
        """
        if post.media_path is None:
            raise PersistenceError(f"Schedule {post.id} has no media file")
        try:
            async with aiofiles.open(post.media_path, "rb") as fh:
                return await fh.read()
        except OSError as exc:
            raise PersistenceError(
                f"Cannot read media for schedule {post.id}: {exc}", path=post.media_path
            ) from exc

    async def discard_media(self, post: ScheduledPost) -> None:
        """Delete a post's media file if it exists."""
        if post.media_path is None:
            return
        try:
            if await aiofiles.os.path.exists(post.media_path):
                await aiofiles.os.remove(post.media_path)
        except OSError:
            logger.warning("[STORE] Could not delete media %s", post.media_path, exc_info=True)

    # ================================================================
    # INTERNAL HELPERS
    # ================================================================

    async def _read_records(self) -> List[dict]:
        try:
            async with aiofiles.open(self.schedule_path, "r", encoding="utf-8") as fh:
                raw = await fh.read()
            data = json.loads(raw) if raw.strip() else []
        except (OSError, ValueError) as exc:
            raise PersistenceError(str(exc), path=str(self.schedule_path)) from exc

        if not isinstance(data, list):
            raise PersistenceError(
                f"Expected a JSON array, got {type(data).__name__}",
                path=str(self.schedule_path),
            )
        return data

    async def _read_next_id(self) -> int:
        if not await aiofiles.os.path.exists(self.meta_path):
            return 1
        try:
            async with aiofiles.open(self.meta_path, "r", encoding="utf-8") as fh:
                meta = json.loads(await fh.read())
            return int(meta.get("nextId", 1))
        except (OSError, ValueError, TypeError, AttributeError):
            logger.warning("[STORE] Ignoring unreadable id counter %s", self.meta_path)
            return 1

    async def _atomic_write(self, path: Path, text: str) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as fh:
                await fh.write(text)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as exc:
            raise PersistenceError(f"Cannot write {path}: {exc}", path=str(path)) from exc

    async def _write_media(self, media: PendingMedia) -> Path:
        await aiofiles.os.makedirs(self.media_dir, exist_ok=True)
        stamp = int(utc_now().timestamp() * 1000)
        path = self.media_dir / f"status_{stamp}{media.kind.extension}"
        suffix = 1
        while await aiofiles.os.path.exists(path):
            path = self.media_dir / f"status_{stamp}_{suffix}{media.kind.extension}"
            suffix += 1

        try:
            async with aiofiles.open(path, "wb") as fh:
                await fh.write(media.data)
        except OSError as exc:
            raise PersistenceError(f"Cannot store media: {exc}", path=str(path)) from exc
        return path


def _numeric_id(record: object) -> int:
    if not isinstance(record, dict):
        return 0
    try:
        return int(record.get("id"))
    except (TypeError, ValueError):
        return 0


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ScheduleStore",
]
