"""Tests for the scheduling models.

Validates:
- StatusKind properties
- Payload variants enforce text-xor-media by type
- ScheduledPost record layout and from_record rebuilding
- TickResult defaults
"""

from datetime import datetime, timedelta

import pytest
import pytz

from statusbot.scheduling.models import (
    MediaPayload,
    PendingMedia,
    ScheduleCandidate,
    ScheduledPost,
    SchedulerState,
    StatusKind,
    TextPayload,
    TickResult,
    parse_timestamp,
)

WHEN = datetime(2026, 12, 25, 15, 30, tzinfo=pytz.utc)


# =============================================================================
# StatusKind
# =============================================================================


class TestStatusKind:
    def test_values(self):
        assert {k.value for k in StatusKind} == {"text", "image", "video"}

    @pytest.mark.parametrize(
        "kind, is_media",
        [(StatusKind.TEXT, False), (StatusKind.IMAGE, True), (StatusKind.VIDEO, True)],
    )
    def test_is_media(self, kind, is_media):
        assert kind.is_media is is_media

    def test_extensions(self):
        assert StatusKind.IMAGE.extension == ".jpg"
        assert StatusKind.VIDEO.extension == ".mp4"
        with pytest.raises(ValueError):
            StatusKind.TEXT.extension

    def test_label(self):
        assert StatusKind.VIDEO.label == "Video Status"


# =============================================================================
# Payloads
# =============================================================================


class TestPayloads:
    def test_text_payload_kind(self):
        assert TextPayload("hi").kind is StatusKind.TEXT

    def test_media_payload_rejects_text_kind(self):
        with pytest.raises(ValueError):
            MediaPayload(kind=StatusKind.TEXT, media_path="/tmp/x")

    def test_pending_media_rejects_text_kind(self):
        with pytest.raises(ValueError):
            PendingMedia(kind=StatusKind.TEXT, data=b"x")

    def test_candidate_kind_follows_payload(self):
        candidate = ScheduleCandidate(WHEN, PendingMedia(StatusKind.VIDEO, b"v"))
        assert candidate.kind is StatusKind.VIDEO


# =============================================================================
# ScheduledPost
# =============================================================================


class TestScheduledPost:
    def test_text_post_accessors(self):
        post = ScheduledPost(id="1", scheduled_at=WHEN, payload=TextPayload("Hello"))
        assert post.kind is StatusKind.TEXT
        assert post.text == "Hello"
        assert post.media_path is None
        assert post.caption is None

    def test_media_post_accessors(self):
        payload = MediaPayload(StatusKind.IMAGE, "/data/status_1.jpg", caption="Look")
        post = ScheduledPost(id="2", scheduled_at=WHEN, payload=payload)
        assert post.kind is StatusKind.IMAGE
        assert post.text is None
        assert post.media_path == "/data/status_1.jpg"
        assert post.caption == "Look"

    def test_created_at_defaults_to_aware_now(self):
        post = ScheduledPost(id="1", scheduled_at=WHEN, payload=TextPayload("x"))
        assert post.created_at.tzinfo is not None

    def test_sort_key_uses_numeric_id_for_ties(self):
        a = ScheduledPost(id="10", scheduled_at=WHEN, payload=TextPayload("a"))
        b = ScheduledPost(id="9", scheduled_at=WHEN, payload=TextPayload("b"))
        assert sorted([a, b], key=lambda p: p.sort_key) == [b, a]

    def test_to_record_layout(self):
        post = ScheduledPost(
            id="3",
            scheduled_at=WHEN,
            payload=MediaPayload(StatusKind.VIDEO, "/m/status_3.mp4", caption="clip"),
            from_jid="123@s.whatsapp.net",
            created_by="123",
            created_at=WHEN - timedelta(days=1),
        )
        assert post.to_record() == {
            "id": "3",
            "time": WHEN.isoformat(),
            "type": "video",
            "content": None,
            "caption": "clip",
            "mediaPath": "/m/status_3.mp4",
            "fromJid": "123@s.whatsapp.net",
            "createdAt": (WHEN - timedelta(days=1)).isoformat(),
            "createdBy": "123",
        }

    def test_from_record_rebuilds_post_in_timezone(self):
        record = {
            "id": "5",
            "time": "2026-12-25T14:30:00.000Z",
            "type": "text",
            "content": "Merry Christmas",
            "caption": None,
            "mediaPath": None,
            "fromJid": "123@s.whatsapp.net",
            "createdAt": "2026-12-01T10:00:00.000Z",
            "createdBy": "123",
        }
        post = ScheduledPost.from_record(record, "Africa/Lagos")

        assert post.id == "5"
        assert post.text == "Merry Christmas"
        assert post.scheduled_at.tzinfo.zone == "Africa/Lagos"
        assert post.scheduled_at.hour == 15
        assert post.scheduled_at == datetime(2026, 12, 25, 14, 30, tzinfo=pytz.utc)

    def test_from_record_accepts_numeric_id(self):
        record = {"id": 7, "time": WHEN.isoformat(), "type": "text", "content": "x"}
        assert ScheduledPost.from_record(record).id == "7"

    @pytest.mark.parametrize(
        "record",
        [
            {"time": "2026-12-25T14:30:00Z", "type": "text", "content": "x"},
            {"id": "1", "time": "2026-12-25T14:30:00Z", "type": "text", "content": ""},
            {"id": "1", "time": "2026-12-25T14:30:00Z", "type": "image", "mediaPath": None},
            {"id": "1", "time": "2026-12-25T14:30:00Z", "type": "sticker", "content": "x"},
            {"id": "1", "time": "not a time", "type": "text", "content": "x"},
        ],
        ids=["no-id", "empty-text", "no-media-path", "unknown-type", "bad-time"],
    )
    def test_from_record_rejects_invalid(self, record):
        with pytest.raises(ValueError):
            ScheduledPost.from_record(record)


def test_parse_timestamp_handles_z_suffix():
    assert parse_timestamp("2026-12-25T14:30:00Z") == datetime(2026, 12, 25, 14, 30, tzinfo=pytz.utc)


def test_tick_result_defaults():
    result = TickResult(now=WHEN)
    assert result.attempted == []
    assert result.sent == []
    assert result.failed == []
    assert result.skipped is False


def test_scheduler_states():
    assert {s.value for s in SchedulerState} == {"idle", "scanning"}
