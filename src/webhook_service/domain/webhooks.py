"""Webhook domain primitives."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from webhook_service.domain.enums import DeliveryStatus, WebhookEventType


class WebhookConfig(BaseModel):
    id: UUID
    qr_code_id: UUID
    user_id: UUID
    url: str
    secret: str
    is_active: bool = True
    events: list[str] = Field(default_factory=lambda: [WebhookEventType.SCAN.value])
    created_at: datetime
    updated_at: datetime

    def subscribes_to(self, event_type: str) -> bool:
        return event_type in self.events

    def public_dump(self) -> dict[str, Any]:
        """JSON representation without the signing secret."""
        return self.model_dump(mode="json", exclude={"secret"})


class WebhookDelivery(BaseModel):
    id: UUID
    webhook_config_id: UUID
    event_ref: str | None = None
    event_type: str
    payload: dict[str, Any]
    status: DeliveryStatus
    http_status: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    attempt_number: int = 0
    max_attempts: int = 5
    next_retry_at: datetime | None = None
    created_at: datetime
    delivered_at: datetime | None = None
