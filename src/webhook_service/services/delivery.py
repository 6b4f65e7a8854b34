"""Single-attempt webhook delivery and its HTTP client lifecycle."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

import structlog
from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout, web

from webhook_service.domain.enums import DeliveryStatus
from webhook_service.domain.state_machine import resolve_attempt
from webhook_service.domain.webhooks import WebhookConfig, WebhookDelivery
from webhook_service.otel import get_tracer
from webhook_service.repositories.webhooks import (
    WebhookConfigRepository,
    WebhookDeliveryRepository,
)
from webhook_service.services.signing import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    canonical_body,
    signature_header,
)

logger = structlog.get_logger(__name__)
_tracer = get_tracer(__name__)

EVENT_HEADER = "X-Webhook-Event"
DELIVERY_ID_HEADER = "X-Webhook-Delivery-Id"

WEBHOOK_SESSION_KEY = "webhook_http_session"
BACKGROUND_TASKS_KEY = "webhook_background_tasks"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class HttpResult:
    status: int | None
    body: str | None
    error: str | None

    @property
    def ok(self) -> bool:
        return self.status is not None and 200 <= self.status < 300


class DeliveryExecutor:
    """Performs one HTTP attempt for a delivery and records the outcome."""

    def __init__(
        self,
        deliveries: WebhookDeliveryRepository,
        configs: WebhookConfigRepository,
        session: ClientSession,
        *,
        timeout_seconds: float = 10.0,
        response_body_limit: int = 2048,
        user_agent: str = "QRWebhooks/1.0",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._deliveries = deliveries
        self._configs = configs
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._response_body_limit = response_body_limit
        self._user_agent = user_agent
        self._clock = clock

    async def deliver(self, delivery_id: UUID) -> bool:
        log = logger.bind(delivery_id=str(delivery_id))
        delivery = await self._deliveries.get(delivery_id)
        if delivery is None:
            log.warning("webhook delivery not found")
            return False
        if delivery.status.is_terminal:
            log.info("webhook delivery already terminal", status=delivery.status.value)
            return delivery.status is DeliveryStatus.SUCCESS

        config = await self._configs.get_by_id(delivery.webhook_config_id)
        if config is None or not config.is_active:
            reason = "Webhook config not found" if config is None else "Webhook config is inactive"
            await self._deliveries.park(delivery.id, reason)
            log.warning("webhook delivery parked", reason=reason)
            return False

        now = self._clock()
        with _tracer.start_as_current_span("webhook.deliver") as span:
            span.set_attribute("webhook.delivery_id", str(delivery.id))
            span.set_attribute("webhook.attempt", delivery.attempt_number + 1)
            result = await self._post(config, delivery, now)
            if result.status is not None:
                span.set_attribute("http.status_code", result.status)
        outcome = resolve_attempt(
            delivery.status,
            attempt_number=delivery.attempt_number,
            max_attempts=delivery.max_attempts,
            succeeded=result.ok,
            now=now,
        )
        error_message = None if result.ok else (result.error or f"HTTP {result.status}")
        recorded = await self._deliveries.record_attempt(
            delivery.id,
            previous_attempt=delivery.attempt_number,
            outcome=outcome,
            http_status=result.status,
            response_body=result.body,
            error_message=error_message,
        )
        if not recorded:
            log.warning("webhook attempt raced with another writer", attempt=outcome.attempt_number)

        log_method = log.info if result.ok else log.warning
        log_method(
            "webhook attempt finished",
            attempt=outcome.attempt_number,
            status=outcome.status.value,
            http_status=result.status,
            error=error_message,
            next_retry_at=outcome.next_retry_at.isoformat() if outcome.next_retry_at else None,
        )
        return result.ok

    async def _post(self, config: WebhookConfig, delivery: WebhookDelivery, now: datetime) -> HttpResult:
        body_bytes = canonical_body(delivery.payload)
        timestamp = int(now.timestamp())
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._user_agent,
            EVENT_HEADER: delivery.event_type,
            DELIVERY_ID_HEADER: str(delivery.id),
            TIMESTAMP_HEADER: str(timestamp),
            SIGNATURE_HEADER: signature_header(config.secret, body_bytes, timestamp),
        }
        try:
            async with self._session.post(
                config.url,
                data=body_bytes,
                headers=headers,
                timeout=ClientTimeout(total=self._timeout_seconds),
                allow_redirects=False,
            ) as resp:
                raw = await self._read_limited(resp)
                return HttpResult(
                    status=resp.status,
                    body=raw.decode("utf-8", errors="replace"),
                    error=None if 200 <= resp.status < 300 else f"HTTP {resp.status}: {resp.reason}",
                )
        except asyncio.TimeoutError:
            return HttpResult(None, None, f"Request timed out after {self._timeout_seconds:g}s")
        except ClientError as exc:
            return HttpResult(None, None, str(exc) or type(exc).__name__)

    async def _read_limited(self, resp: ClientResponse) -> bytes:
        buf = bytearray()
        while len(buf) < self._response_body_limit:
            chunk = await resp.content.read(self._response_body_limit - len(buf))
            if not chunk:
                break
            buf.extend(chunk)
        return bytes(buf)


def schedule_first_attempt(
    app: web.Application, executor: DeliveryExecutor, delivery_id: UUID
) -> asyncio.Task:
    """Run the first attempt in the background so the producer never waits on a receiver.

    Failures are recorded on the delivery and retried by the scheduler. A
    delivery whose process dies before this attempt is recorded stays
    ``pending`` with no ``next_retry_at`` and is never picked up by the
    scheduler, which only selects ``failed`` rows.
    """
    tasks: set[asyncio.Task] = app[BACKGROUND_TASKS_KEY]
    task = asyncio.create_task(executor.deliver(delivery_id))
    tasks.add(task)

    def _done(t: asyncio.Task) -> None:
        tasks.discard(t)
        if not t.cancelled() and t.exception() is not None:
            logger.error(
                "webhook first attempt crashed",
                delivery_id=str(delivery_id),
                exc_info=t.exception(),
            )

    task.add_done_callback(_done)
    return task


async def start_webhook_delivery(app: web.Application) -> None:
    app[WEBHOOK_SESSION_KEY] = ClientSession()
    app[BACKGROUND_TASKS_KEY] = set()


async def stop_webhook_delivery(app: web.Application) -> None:
    tasks: set[asyncio.Task] = app.get(BACKGROUND_TASKS_KEY) or set()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
    session = app.get(WEBHOOK_SESSION_KEY)
    if session is not None:
        await session.close()
