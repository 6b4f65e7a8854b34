"""Webhook domain service (configuration, event intake, test sends, delivery log)."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Tuple
from uuid import UUID, uuid4

import structlog

from webhook_service.core.exceptions import InvalidWebhookConfigError, NotFoundError
from webhook_service.domain.dto import (
    EventData,
    ResourceSummary,
    ResourceSummaryInput,
    ScanEventData,
    WebhookConfigUpsertDTO,
)
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.webhooks import WebhookConfig, WebhookDelivery
from webhook_service.repositories.webhooks import (
    WebhookConfigRepository,
    WebhookDeliveryRepository,
)
from webhook_service.services.delivery import DeliveryExecutor
from webhook_service.services.payloads import build_payload
from webhook_service.services.signing import generate_secret
from webhook_service.services.url_validator import normalize_webhook_url, validate_webhook_url

logger = structlog.get_logger(__name__)


def mock_scan_event(now: datetime | None = None) -> ScanEventData:
    """Sample scan used by test sends."""
    return ScanEventData(
        scanned_at=now or datetime.now(timezone.utc),
        device_type="mobile",
        os="iOS",
        browser="Safari",
        country="United States",
        city="San Francisco",
        region="California",
    )


class WebhookService:
    def __init__(
        self,
        config_repository: WebhookConfigRepository,
        delivery_repository: WebhookDeliveryRepository,
        executor: DeliveryExecutor,
        *,
        max_attempts: int = 5,
    ):
        self._configs = config_repository
        self._deliveries = delivery_repository
        self._executor = executor
        self._max_attempts = max_attempts

    @property
    def executor(self) -> DeliveryExecutor:
        return self._executor

    async def get_config(self, qr_code_id: UUID, user_id: UUID) -> WebhookConfig | None:
        return await self._configs.get_for_owner(qr_code_id, user_id)

    async def upsert_config(
        self, qr_code_id: UUID, user_id: UUID, dto: WebhookConfigUpsertDTO
    ) -> Tuple[WebhookConfig, str | None]:
        """Create or update the QR code's config.

        Returns the config and, only when it was just created, its secret.
        """
        check = validate_webhook_url(dto.url)
        if not check.valid:
            raise InvalidWebhookConfigError(check.reason or "Invalid webhook URL")

        config, created = await self._configs.upsert(
            qr_code_id=qr_code_id,
            user_id=user_id,
            url=normalize_webhook_url(dto.url),
            is_active=dto.is_active,
            events=dto.events,
            secret=generate_secret(),
        )
        logger.info(
            "webhook config saved",
            webhook_config_id=str(config.id),
            qr_code_id=str(qr_code_id),
            created=created,
        )
        return config, (config.secret if created else None)

    async def delete_config(self, qr_code_id: UUID, user_id: UUID) -> None:
        await self._configs.delete(qr_code_id, user_id)
        logger.info("webhook config deleted", qr_code_id=str(qr_code_id))

    async def list_deliveries(
        self,
        qr_code_id: UUID,
        user_id: UUID,
        *,
        status: DeliveryStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[WebhookDelivery], int]:
        config = await self._configs.get_for_owner(qr_code_id, user_id)
        if config is None:
            return [], 0
        return await self._deliveries.list_for_config(
            config.id, status=status, limit=limit, offset=offset
        )

    async def create_delivery(
        self,
        config: WebhookConfig,
        *,
        event_ref: str | None,
        event: EventData,
        resource: ResourceSummary,
    ) -> WebhookDelivery:
        """Record a delivery with its payload frozen before any attempt."""
        delivery_id = uuid4()
        payload = build_payload(delivery_id, event_ref, event, resource)
        return await self._deliveries.create(
            delivery_id=delivery_id,
            webhook_config_id=config.id,
            event_ref=event_ref,
            event_type=event.type,
            payload=payload,
            max_attempts=self._max_attempts,
        )

    async def enqueue_event(
        self,
        qr_code_id: UUID,
        *,
        event_ref: str | None,
        event: EventData,
        resource: ResourceSummaryInput,
    ) -> WebhookDelivery | None:
        """Create a delivery for an event if the QR code has a subscribed, active config."""
        config = await self._configs.get_active(qr_code_id)
        if config is None or not config.subscribes_to(event.type):
            return None
        delivery = await self.create_delivery(
            config,
            event_ref=event_ref,
            event=event,
            resource=resource.for_resource(qr_code_id),
        )
        logger.info(
            "webhook delivery enqueued",
            delivery_id=str(delivery.id),
            event_type=event.type,
        )
        return delivery

    async def send_test(
        self, qr_code_id: UUID, user_id: UUID, resource: ResourceSummaryInput
    ) -> Tuple[WebhookDelivery, bool]:
        """Deliver a mock scan synchronously and return the recorded outcome."""
        config = await self._configs.get_active(qr_code_id, user_id=user_id)
        if config is None:
            raise NotFoundError("No active webhook configured for this QR code")

        delivery = await self.create_delivery(
            config,
            event_ref=None,
            event=mock_scan_event(),
            resource=resource.for_resource(qr_code_id),
        )
        success = await self._executor.deliver(delivery.id)
        refreshed = await self._deliveries.get(delivery.id)
        return (refreshed or delivery), success
