"""In-memory repositories and a loopback webhook receiver for tests."""
from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from aiohttp import web

from webhook_service.core.exceptions import NotFoundError
from webhook_service.domain.dto import ResourceSummary, ScanEventData
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.state_machine import AttemptOutcome
from webhook_service.domain.webhooks import WebhookConfig, WebhookDelivery
from webhook_service.services.payloads import build_payload

_OPEN = (DeliveryStatus.PENDING, DeliveryStatus.FAILED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def make_headers(user_id: UUID) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


def cron_headers(secret: str = "cron-secret") -> dict[str, str]:
    return {"Authorization": f"Bearer {secret}"}


class InMemoryStore:
    def __init__(self) -> None:
        self.configs: dict[UUID, WebhookConfig] = {}
        self.deliveries: dict[UUID, WebhookDelivery] = {}


class FakeConfigRepository:
    def __init__(self, store: InMemoryStore):
        self._store = store

    def _by_qr(self, qr_code_id: UUID) -> WebhookConfig | None:
        return next((c for c in self._store.configs.values() if c.qr_code_id == qr_code_id), None)

    async def get_by_id(self, config_id: UUID) -> WebhookConfig | None:
        return self._store.configs.get(config_id)

    async def get_for_owner(self, qr_code_id: UUID, user_id: UUID) -> WebhookConfig | None:
        config = self._by_qr(qr_code_id)
        return config if config is not None and config.user_id == user_id else None

    async def get_active(self, qr_code_id: UUID, *, user_id: UUID | None = None) -> WebhookConfig | None:
        config = self._by_qr(qr_code_id)
        if config is None or not config.is_active:
            return None
        if user_id is not None and config.user_id != user_id:
            return None
        return config

    async def upsert(self, *, qr_code_id, user_id, url, is_active, events, secret):
        existing = self._by_qr(qr_code_id)
        if existing is None:
            now = utcnow()
            config = WebhookConfig(
                id=uuid4(),
                qr_code_id=qr_code_id,
                user_id=user_id,
                url=url,
                secret=secret,
                is_active=is_active,
                events=events,
                created_at=now,
                updated_at=now,
            )
            self._store.configs[config.id] = config
            return config, True
        if existing.user_id != user_id:
            raise NotFoundError("Webhook config not found")
        updated = existing.model_copy(
            update={"url": url, "is_active": is_active, "events": events, "updated_at": utcnow()}
        )
        self._store.configs[updated.id] = updated
        return updated, False

    async def delete(self, qr_code_id: UUID, user_id: UUID) -> None:
        config = await self.get_for_owner(qr_code_id, user_id)
        if config is None:
            raise NotFoundError("Webhook config not found")
        del self._store.configs[config.id]
        for delivery_id in [
            d.id for d in self._store.deliveries.values() if d.webhook_config_id == config.id
        ]:
            del self._store.deliveries[delivery_id]


class FakeDeliveryRepository:
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def create(self, *, delivery_id, webhook_config_id, event_ref, event_type, payload, max_attempts):
        delivery = WebhookDelivery(
            id=delivery_id,
            webhook_config_id=webhook_config_id,
            event_ref=event_ref,
            event_type=event_type,
            payload=payload,
            status=DeliveryStatus.PENDING,
            max_attempts=max_attempts,
            created_at=utcnow(),
        )
        self._store.deliveries[delivery.id] = delivery
        return delivery

    async def get(self, delivery_id: UUID) -> WebhookDelivery | None:
        return self._store.deliveries.get(delivery_id)

    async def record_attempt(
        self,
        delivery_id: UUID,
        *,
        previous_attempt: int,
        outcome: AttemptOutcome,
        http_status: int | None,
        response_body: str | None,
        error_message: str | None,
    ) -> bool:
        current = self._store.deliveries.get(delivery_id)
        if current is None or current.status not in _OPEN or current.attempt_number != previous_attempt:
            return False
        self._store.deliveries[delivery_id] = current.model_copy(
            update={
                "status": outcome.status,
                "attempt_number": outcome.attempt_number,
                "next_retry_at": outcome.next_retry_at,
                "delivered_at": outcome.delivered_at or current.delivered_at,
                "http_status": http_status,
                "response_body": response_body,
                "error_message": error_message,
            }
        )
        return True

    async def park(self, delivery_id: UUID, error_message: str) -> bool:
        current = self._store.deliveries.get(delivery_id)
        if current is None or current.status not in _OPEN:
            return False
        self._store.deliveries[delivery_id] = current.model_copy(
            update={
                "status": DeliveryStatus.FAILED,
                "next_retry_at": None,
                "error_message": error_message,
            }
        )
        return True

    async def list_due_for_retry(self, now: datetime, *, limit: int = 50) -> list[WebhookDelivery]:
        due = [
            d
            for d in self._store.deliveries.values()
            if d.status is DeliveryStatus.FAILED and d.next_retry_at is not None and d.next_retry_at <= now
        ]
        due.sort(key=lambda d: d.next_retry_at)
        return due[:limit]

    async def list_for_config(self, webhook_config_id, *, status=None, limit=20, offset=0):
        items = [
            d
            for d in self._store.deliveries.values()
            if d.webhook_config_id == webhook_config_id and (status is None or d.status is status)
        ]
        items.sort(key=lambda d: d.created_at, reverse=True)
        return items[offset : offset + limit], len(items)

    async def delete_created_before(self, cutoff: datetime) -> int:
        doomed = [d.id for d in self._store.deliveries.values() if d.created_at < cutoff]
        for delivery_id in doomed:
            del self._store.deliveries[delivery_id]
        return len(doomed)


def seed_config(
    store: InMemoryStore,
    *,
    url: str = "https://hooks.example.com/qr",
    user_id: UUID | None = None,
    qr_code_id: UUID | None = None,
    is_active: bool = True,
    events: list[str] | None = None,
    secret: str = "whsec-test-secret",
) -> WebhookConfig:
    now = utcnow()
    config = WebhookConfig(
        id=uuid4(),
        qr_code_id=qr_code_id or uuid4(),
        user_id=user_id or uuid4(),
        url=url,
        secret=secret,
        is_active=is_active,
        events=events or ["scan"],
        created_at=now,
        updated_at=now,
    )
    store.configs[config.id] = config
    return config


def seed_delivery(
    store: InMemoryStore,
    config: WebhookConfig,
    *,
    status: DeliveryStatus = DeliveryStatus.PENDING,
    attempt_number: int = 0,
    max_attempts: int = 5,
    next_retry_at: datetime | None = None,
    created_at: datetime | None = None,
) -> WebhookDelivery:
    delivery_id = uuid4()
    event = ScanEventData(scanned_at=utcnow(), device_type="desktop", country="Germany")
    resource = ResourceSummary(id=config.qr_code_id, name="Menu", short_code="abc123")
    delivery = WebhookDelivery(
        id=delivery_id,
        webhook_config_id=config.id,
        event_ref="scan-1",
        event_type="scan",
        payload=build_payload(delivery_id, "scan-1", event, resource),
        status=status,
        attempt_number=attempt_number,
        max_attempts=max_attempts,
        next_retry_at=next_retry_at,
        created_at=created_at or utcnow(),
    )
    store.deliveries[delivery.id] = delivery
    return delivery


class WebhookReceiver:
    """Local HTTP endpoint standing in for a customer's webhook server."""

    def __init__(self) -> None:
        self.requests: list[tuple[dict[str, str], bytes]] = []
        self.statuses: list[int] = []
        self.response_body = "ok"
        self.delay = 0.0
        self.base_url = ""
        self._runner: web.AppRunner | None = None

    @property
    def url(self) -> str:
        return f"{self.base_url}/hook"

    @property
    def redirect_url(self) -> str:
        return f"{self.base_url}/moved"

    async def _handle(self, request: web.Request) -> web.Response:
        self.requests.append((dict(request.headers), await request.read()))
        if self.delay:
            await asyncio.sleep(self.delay)
        status = self.statuses.pop(0) if self.statuses else 200
        return web.Response(status=status, text=self.response_body)

    async def _moved(self, request: web.Request) -> web.Response:
        self.requests.append((dict(request.headers), await request.read()))
        raise web.HTTPFound("/hook")

    async def start(self) -> None:
        app = web.Application()
        app.router.add_post("/hook", self._handle)
        app.router.add_post("/moved", self._moved)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "127.0.0.1", 0)
        await site.start()
        port = site._server.sockets[0].getsockname()[1]  # type: ignore[union-attr]
        self.base_url = f"http://127.0.0.1:{port}"

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()

    def json_bodies(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for _, raw in self.requests]
