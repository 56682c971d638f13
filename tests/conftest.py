"""Shared fixtures for the status scheduler test suite."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytz

from statusbot.scheduling.models import ScheduleCandidate, TextPayload
from statusbot.scheduling.schedule_store import ScheduleStore


# ---------------------------------------------------------------------------
# Ensure we don't pick up a real deployment configuration during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear bot env vars so tests never hit a real gateway."""
    keys = [
        "TIMEZONE",
        "PREFIX",
        "STORAGE_DIR",
        "STATUS_CHECK_INTERVAL",
        "STATUS_STARTUP_DELAY",
        "WHATSAPP_GATEWAY_URL",
        "WHATSAPP_GATEWAY_TOKEN",
        "OWNER_NUMBER",
        "BOT_JID",
        "LOG_LEVEL",
        "LOG_DIR",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def fixed_now():
    """A fixed UTC datetime for deterministic tests."""
    return datetime(2026, 6, 15, 12, 0, 0, tzinfo=pytz.utc)


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "storage"


@pytest.fixture
def make_store(storage_dir):
    """Factory building stores over the same files (simulates restarts)."""

    def _make(timezone="UTC"):
        return ScheduleStore(
            storage_dir / "status_schedules.json",
            storage_dir / "status_media",
            timezone,
        )

    return _make


@pytest.fixture
def store(make_store):
    return make_store()


@pytest.fixture
def text_candidate(fixed_now):
    """Factory for text candidates scheduled *minutes* after fixed_now."""

    def _make(minutes=5, text="Good morning!"):
        return ScheduleCandidate(
            scheduled_at=fixed_now + timedelta(minutes=minutes),
            payload=TextPayload(text=text),
            from_jid="2348000000000@s.whatsapp.net",
            created_by="2348000000000",
        )

    return _make


# ---------------------------------------------------------------------------
# Mock WhatsApp gateway
# ---------------------------------------------------------------------------
@pytest.fixture
def sender():
    """A mock status sender recording every publish."""
    mock = AsyncMock()
    mock.send_text_status.return_value = None
    mock.send_media_status.return_value = None
    return mock


@pytest.fixture
def mock_client():
    """A mock gateway client for command handlers."""
    client = AsyncMock()
    client.send_text.return_value = {}
    client.send_text_status.return_value = None
    client.send_media_status.return_value = None
    client.download_media.return_value = b"\xff\xd8media-bytes"
    return client
