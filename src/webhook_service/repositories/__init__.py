"""Repository package exports."""

from webhook_service.repositories.webhooks import (
    WebhookConfigRepository,
    WebhookDeliveryRepository,
)

__all__ = [
    "WebhookConfigRepository",
    "WebhookDeliveryRepository",
]
