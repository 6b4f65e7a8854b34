"""Internal event intake used by the scan recorder."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import parse_body, parse_uuid, read_json
from webhook_service.domain.dto import EventIngestDTO
from webhook_service.services.delivery import schedule_first_attempt
from webhook_service.services.dependencies import get_webhook_service, require_trigger_secret

routes = web.RouteTableDef()


@routes.post("/api/v1/internal/qr-codes/{qr_code_id}/events")
async def ingest_event(request: web.Request):
    require_trigger_secret(request)
    qr_code_id = parse_uuid(request.match_info["qr_code_id"], "qr_code_id")
    dto = parse_body(EventIngestDTO, await read_json(request))

    service = await get_webhook_service(request)
    delivery = await service.enqueue_event(
        qr_code_id,
        event_ref=dto.event_id,
        event=dto.event,
        resource=dto.resource,
    )
    if delivery is None:
        return web.json_response({"delivery_id": None}, status=202)

    schedule_first_attempt(request.app, service.executor, delivery.id)
    return web.json_response({"delivery_id": str(delivery.id)}, status=202)
