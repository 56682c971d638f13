"""External service clients."""

from statusbot.tools.whatsapp_gateway import (
    STATUS_BROADCAST_JID,
    OwnerNotifier,
    WhatsAppGatewayClient,
)

__all__ = [
    "STATUS_BROADCAST_JID",
    "OwnerNotifier",
    "WhatsAppGatewayClient",
]
