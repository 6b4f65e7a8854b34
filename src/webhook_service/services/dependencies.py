"""Shared dependency providers for aiohttp handlers."""
from __future__ import annotations

import hmac
from typing import Awaitable, Callable, TypeVar
from uuid import UUID

import structlog
from aiohttp import web

from webhook_service.api.utils import extract_bearer_token
from webhook_service.db.pool import get_pool
from webhook_service.repositories.webhooks import (
    WebhookConfigRepository,
    WebhookDeliveryRepository,
)
from webhook_service.services.delivery import WEBHOOK_SESSION_KEY, DeliveryExecutor
from webhook_service.services.webhooks import WebhookService
from webhook_service.settings import APP_SETTINGS_KEY, Settings
from webhook_service.workers.webhook_retries import RetryScheduler

logger = structlog.get_logger(__name__)

TService = TypeVar("TService")

_WEBHOOK_SERVICE_KEY = "webhook_service"
_EXECUTOR_KEY = "delivery_executor"
_DELIVERY_REPOSITORY_KEY = "delivery_repository"

USER_ID_HEADER = "X-User-Id"


def app_settings(request: web.Request) -> Settings:
    return request.app[APP_SETTINGS_KEY]


async def require_current_user(request: web.Request) -> UUID:
    """Account id forwarded by the dashboard gateway."""
    user_header = request.headers.get(USER_ID_HEADER)
    if user_header is None:
        raise web.HTTPUnauthorized(reason=f"Header {USER_ID_HEADER} is required")
    try:
        return UUID(user_header)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {USER_ID_HEADER}") from exc


def require_trigger_secret(request: web.Request) -> None:
    """Check the shared bearer secret of cron/internal triggers.

    Runs before any data access. With no secret configured every call is
    rejected.
    """
    configured = app_settings(request).cron_secret
    token = extract_bearer_token(request)
    if configured is None or not configured.get_secret_value():
        reason = "cron secret not configured"
    elif token is None:
        reason = "missing bearer token"
    elif not hmac.compare_digest(token.encode("utf-8"), configured.get_secret_value().encode("utf-8")):
        reason = "secret mismatch"
    else:
        return
    logger.warning("cron authorization failed", reason=reason, path=request.path)
    raise web.HTTPUnauthorized(reason="Unauthorized")


async def _get_or_create_service(
    request: web.Request,
    cache_key: str,
    builder: Callable[[web.Request], Awaitable[TService]],
) -> TService:
    service = request.get(cache_key)
    if service is None:
        service = await builder(request)
        request[cache_key] = service
    return service


async def get_delivery_repository(request: web.Request) -> WebhookDeliveryRepository:
    async def builder(_: web.Request) -> WebhookDeliveryRepository:
        pool = await get_pool()
        return WebhookDeliveryRepository(pool)

    return await _get_or_create_service(request, _DELIVERY_REPOSITORY_KEY, builder)


async def get_delivery_executor(request: web.Request) -> DeliveryExecutor:
    async def builder(req: web.Request) -> DeliveryExecutor:
        pool = await get_pool()
        cfg = app_settings(req)
        return DeliveryExecutor(
            await get_delivery_repository(req),
            WebhookConfigRepository(pool),
            req.app[WEBHOOK_SESSION_KEY],
            timeout_seconds=cfg.webhook_request_timeout_seconds,
            response_body_limit=cfg.webhook_response_body_limit,
            user_agent=cfg.webhook_user_agent,
        )

    return await _get_or_create_service(request, _EXECUTOR_KEY, builder)


async def get_webhook_service(request: web.Request) -> WebhookService:
    async def builder(req: web.Request) -> WebhookService:
        pool = await get_pool()
        return WebhookService(
            WebhookConfigRepository(pool),
            await get_delivery_repository(req),
            await get_delivery_executor(req),
            max_attempts=app_settings(req).webhook_max_attempts,
        )

    return await _get_or_create_service(request, _WEBHOOK_SERVICE_KEY, builder)


async def get_retry_scheduler(request: web.Request) -> RetryScheduler:
    cfg = app_settings(request)
    return RetryScheduler(
        await get_delivery_repository(request),
        await get_delivery_executor(request),
        batch_size=cfg.webhook_retry_batch_size,
        pause_seconds=cfg.webhook_retry_pause_seconds,
    )
