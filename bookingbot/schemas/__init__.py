from bookingbot.schemas.webhook import (
    ConnectionEvent,
    ConnectionInfo,
    WebhookBody,
    WebhookLocation,
    WebhookMetadata,
    WebhookResponse,
)

__all__ = [
    "ConnectionEvent",
    "ConnectionInfo",
    "WebhookBody",
    "WebhookLocation",
    "WebhookMetadata",
    "WebhookResponse",
]
