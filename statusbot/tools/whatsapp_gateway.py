"""
Async client for the WhatsApp HTTP gateway.

The WhatsApp protocol itself is handled by an external gateway process (a
Baileys bridge).  This client uses ``httpx`` to talk to it:

- ``POST /messages``         -- send a message (chat reply or status)
- ``POST /media/download``   -- fetch the bytes of a media message
- ``GET  /messages/updates`` -- long-poll for inbound messages

Status updates are sent to ``status@broadcast`` with the bot's own JID in
``statusJidList`` so the post is visible on the bot's account.

Sends are never retried (a retried status could be posted twice); media
downloads and polling are idempotent and retried with backoff.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from statusbot.exceptions import GatewayError
from statusbot.scheduling.models import StatusKind
from statusbot.utils import truncate, with_retry

logger = logging.getLogger(__name__)

STATUS_BROADCAST_JID = "status@broadcast"


class WhatsAppGatewayClient:
    """Async wrapper around the WhatsApp gateway HTTP API.

    Args:
        base_url: Gateway base URL, e.g. ``http://localhost:3000``.
        token: Optional bearer token.
        bot_jid: The bot's own JID, used for status visibility.
        timeout: Per-request timeout in seconds.
        transport: Optional ``httpx`` transport (tests use ``MockTransport``).

    Usage::

        client = WhatsAppGatewayClient("http://localhost:3000", bot_jid=jid)
        await client.send_text("1234@s.whatsapp.net", "hello")
        await client.send_text_status("Good morning!")
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        bot_jid: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not base_url:
            raise ValueError("WhatsAppGatewayClient requires a non-empty base_url")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.bot_jid = bot_jid
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    @property
    def status_jid_list(self) -> List[str]:
        return [self.bot_jid] if self.bot_jid else []

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(
        self,
        jid: str,
        content: Dict[str, Any],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send one message through the gateway.

        Raises:
            GatewayError: On transport errors or non-2xx responses.
        """
        payload = {"jid": jid, "content": content, "options": options or {}}
        try:
            async with self._client() as client:
                response = await client.post("/messages", json=payload)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise GatewayError(f"sendMessage to {jid} failed: {exc}") from exc

        logger.debug("[GATEWAY] Sent %s to %s", sorted(content), jid)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            logger.debug("[GATEWAY] Non-JSON send response from gateway, ignoring body")
            return {}

    async def send_text(self, jid: str, text: str) -> Dict[str, Any]:
        """Send a plain text chat message."""
        return await self.send_message(jid, {"text": text})

    async def send_text_status(self, text: str) -> None:
        """Post a text status update."""
        await self.send_message(
            STATUS_BROADCAST_JID,
            {"text": text},
            {"backgroundColor": "#000000", "statusJidList": self.status_jid_list},
        )
        logger.info("[GATEWAY] Posted text status: %s", truncate(text, 50))

    async def send_media_status(self, kind: StatusKind, data: bytes, caption: str = "") -> None:
        """Post an image or video status update."""
        if not kind.is_media:
            raise ValueError(f"send_media_status needs a media kind, got '{kind.value}'")
        await self.send_message(
            STATUS_BROADCAST_JID,
            {kind.value: base64.b64encode(data).decode("ascii"), "caption": caption or ""},
            {"statusJidList": self.status_jid_list},
        )
        logger.info(
            "[GATEWAY] Posted %s status with caption: %s",
            kind.value,
            caption or "No caption",
        )

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    @with_retry(
        max_attempts=3,
        base_delay=1.0,
        retryable_exceptions=(httpx.HTTPError,),
        operation_name="download_media",
    )
    async def download_media(self, message: Dict[str, Any]) -> bytes:
        """Download the media of a (quoted) WhatsApp message.

        Raises:
            RetryExhaustedError: If every attempt failed.
        """
        async with self._client() as client:
            response = await client.post("/media/download", json={"message": message})
            response.raise_for_status()
            return response.content

    @with_retry(
        max_attempts=3,
        base_delay=2.0,
        retryable_exceptions=(httpx.HTTPError,),
        operation_name="fetch_updates",
    )
    async def fetch_updates(self, timeout: int = 25) -> List[Dict[str, Any]]:
        """Long-poll the gateway for inbound messages."""
        async with self._client(timeout=timeout + self.timeout) as client:
            response = await client.get("/messages/updates", params={"timeout": timeout})
            response.raise_for_status()
            try:
                data = response.json()
            except ValueError as exc:
                raise GatewayError(f"Updates response is not JSON: {exc}") from exc

        if not isinstance(data, list):
            raise GatewayError(f"Expected a list of updates, got {type(data).__name__}")
        return data


class OwnerNotifier:
    """Forwards activity journal entries to the owner's chat."""

    def __init__(self, client: WhatsAppGatewayClient, owner_jid: str) -> None:
        self.client = client
        self.owner_jid = owner_jid

    async def send_log(self, text: str) -> None:
        await self.client.send_text(self.owner_jid, text)


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "STATUS_BROADCAST_JID",
    "WhatsAppGatewayClient",
    "OwnerNotifier",
]
