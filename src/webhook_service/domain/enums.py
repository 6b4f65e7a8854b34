"""Domain enums."""
from __future__ import annotations

from enum import Enum


class DeliveryStatus(str, Enum):
    """Webhook delivery lifecycle states."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.SUCCESS, DeliveryStatus.EXHAUSTED)


class WebhookEventType(str, Enum):
    """Event types a webhook configuration can subscribe to."""

    SCAN = "scan"
