"""Cron trigger endpoints for the retry scheduler and retention cleanup."""
from __future__ import annotations

from datetime import datetime, timezone

from aiohttp import web

from webhook_service.services.dependencies import (
    app_settings,
    get_delivery_repository,
    get_retry_scheduler,
    require_trigger_secret,
)
from webhook_service.workers.webhook_cleanup import webhook_cleanup

routes = web.RouteTableDef()


@routes.get("/api/v1/cron/webhook-retries")
async def run_webhook_retries(request: web.Request):
    """Every minute: retry failed deliveries that are due."""
    require_trigger_secret(request)
    scheduler = await get_retry_scheduler(request)
    result = await scheduler.run(datetime.now(timezone.utc))
    return web.json_response(result.as_dict())


@routes.get("/api/v1/cron/webhook-cleanup")
async def run_webhook_cleanup(request: web.Request):
    """Daily: purge delivery history past the retention window."""
    require_trigger_secret(request)
    deliveries = await get_delivery_repository(request)
    result = await webhook_cleanup(
        deliveries,
        datetime.now(timezone.utc),
        retention_days=app_settings(request).webhook_retention_days,
    )
    return web.json_response(result.as_dict())
