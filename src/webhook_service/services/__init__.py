"""Domain services exports."""

from webhook_service.services.delivery import DeliveryExecutor
from webhook_service.services.webhooks import WebhookService

__all__ = [
    "DeliveryExecutor",
    "WebhookService",
]
