"""Tests for the WhatsApp gateway client using httpx.MockTransport."""

import base64
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from statusbot.exceptions import GatewayError, RetryExhaustedError
from statusbot.scheduling.models import StatusKind
from statusbot.tools.whatsapp_gateway import (
    STATUS_BROADCAST_JID,
    OwnerNotifier,
    WhatsAppGatewayClient,
)

BOT_JID = "2348000000000@s.whatsapp.net"


class Recorder:
    """MockTransport handler that records requests and replays responses.

    Each response is given as ``(status_code, kwargs)``; the last one
    repeats once the others are used up.
    """

    def __init__(self, *responses):
        self.requests = []
        self._responses = list(responses) or [(200, {"json": {"ok": True}})]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, kwargs = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        return httpx.Response(status, **kwargs)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def make_client(recorder, **kwargs):
    return WhatsAppGatewayClient(
        "http://gateway:3000/",
        bot_jid=BOT_JID,
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


def test_requires_base_url():
    with pytest.raises(ValueError):
        WhatsAppGatewayClient("")


# =============================================================================
# Sending
# =============================================================================


class TestSending:
    @pytest.mark.asyncio
    async def test_send_text(self):
        recorder = Recorder()
        client = make_client(recorder, token="secret")

        result = await client.send_text("123@s.whatsapp.net", "hello")

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url == "http://gateway:3000/messages"
        assert request.headers["Authorization"] == "Bearer secret"
        assert recorder.last_json == {
            "jid": "123@s.whatsapp.net",
            "content": {"text": "hello"},
            "options": {},
        }
        assert result == {"ok": True}

    @pytest.mark.asyncio
    async def test_no_auth_header_without_token(self):
        recorder = Recorder()
        await make_client(recorder).send_text("123@s.whatsapp.net", "hello")
        assert "Authorization" not in recorder.requests[0].headers

    @pytest.mark.asyncio
    async def test_send_text_status_targets_broadcast(self):
        recorder = Recorder()
        await make_client(recorder).send_text_status("Good morning!")

        body = recorder.last_json
        assert body["jid"] == STATUS_BROADCAST_JID
        assert body["content"] == {"text": "Good morning!"}
        assert body["options"] == {"backgroundColor": "#000000", "statusJidList": [BOT_JID]}

    @pytest.mark.asyncio
    async def test_send_media_status_encodes_bytes(self):
        recorder = Recorder()
        await make_client(recorder).send_media_status(StatusKind.VIDEO, b"\x00\x01clip", "Watch")

        body = recorder.last_json
        assert body["jid"] == STATUS_BROADCAST_JID
        assert base64.b64decode(body["content"]["video"]) == b"\x00\x01clip"
        assert body["content"]["caption"] == "Watch"
        assert body["options"] == {"statusJidList": [BOT_JID]}

    @pytest.mark.asyncio
    async def test_send_media_status_rejects_text_kind(self):
        with pytest.raises(ValueError):
            await make_client(Recorder()).send_media_status(StatusKind.TEXT, b"x")

    @pytest.mark.asyncio
    async def test_http_error_becomes_gateway_error(self):
        recorder = Recorder((503, {"text": "unavailable"}))

        with pytest.raises(GatewayError):
            await make_client(recorder).send_text_status("hi")

        # Sends are never retried
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_response_body(self):
        recorder = Recorder((204, {}))
        assert await make_client(recorder).send_text("1@s.whatsapp.net", "x") == {}


# =============================================================================
# Receiving
# =============================================================================


class TestReceiving:
    @pytest.mark.asyncio
    async def test_download_media_returns_bytes(self):
        recorder = Recorder((200, {"content": b"jpeg-bytes"}))
        quoted = {"imageMessage": {"caption": "hi"}}

        data = await make_client(recorder).download_media({"key": {}, "message": quoted})

        assert data == b"jpeg-bytes"
        assert recorder.requests[0].url.path == "/media/download"
        assert recorder.last_json == {"message": {"key": {}, "message": quoted}}

    @pytest.mark.asyncio
    async def test_download_media_retries_then_gives_up(self):
        recorder = Recorder((500, {}))

        with patch("statusbot.utils.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(RetryExhaustedError) as exc_info:
                await make_client(recorder).download_media({"message": {}})

        assert exc_info.value.operation == "download_media"
        assert len(recorder.requests) == 3
        assert mock_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_download_media_recovers_after_transient_error(self):
        recorder = Recorder((502, {}), (200, {"content": b"ok"}))

        with patch("statusbot.utils.asyncio.sleep", new_callable=AsyncMock):
            data = await make_client(recorder).download_media({"message": {}})

        assert data == b"ok"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_fetch_updates(self):
        updates = [{"key": {"remoteJid": "1@s.whatsapp.net"}, "message": {"conversation": ".sschedules"}}]
        recorder = Recorder((200, {"json": updates}))

        result = await make_client(recorder).fetch_updates(timeout=10)

        assert result == updates
        assert recorder.requests[0].url.params["timeout"] == "10"

    @pytest.mark.asyncio
    async def test_fetch_updates_rejects_non_list(self):
        recorder = Recorder((200, {"json": {"updates": []}}))

        with pytest.raises(GatewayError):
            await make_client(recorder).fetch_updates()

    @pytest.mark.asyncio
    async def test_fetch_updates_rejects_html_body(self):
        recorder = Recorder((200, {"text": "<html>502 Bad Gateway</html>"}))

        with pytest.raises(GatewayError, match="not JSON"):
            await make_client(recorder).fetch_updates()

        # Not retried: a proxy error page is not a transport failure
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_send_ignores_non_json_body(self):
        recorder = Recorder((200, {"text": "OK"}))
        assert await make_client(recorder).send_text("1@s.whatsapp.net", "x") == {}


@pytest.mark.asyncio
async def test_owner_notifier_sends_to_owner():
    client = AsyncMock()
    notifier = OwnerNotifier(client, "999@s.whatsapp.net")

    await notifier.send_log("[ERROR] something broke")

    client.send_text.assert_awaited_once_with("999@s.whatsapp.net", "[ERROR] something broke")
