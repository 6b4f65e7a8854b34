"""Per-QR-code webhook configuration, test send and delivery log endpoints."""
from __future__ import annotations

from aiohttp import web

from webhook_service.api.utils import (
    paginated_response,
    pagination_params,
    parse_body,
    parse_uuid,
    read_json,
)
from webhook_service.core.exceptions import InvalidWebhookConfigError, NotFoundError
from webhook_service.domain.dto import SendTestDTO, WebhookConfigUpsertDTO
from webhook_service.domain.enums import DeliveryStatus
from webhook_service.services.dependencies import get_webhook_service, require_current_user

routes = web.RouteTableDef()

_WEBHOOK_PATH = "/api/v1/qr-codes/{qr_code_id}/webhook"


def _qr_code_id(request: web.Request):
    return parse_uuid(request.match_info["qr_code_id"], "qr_code_id")


@routes.get(_WEBHOOK_PATH)
async def get_webhook(request: web.Request):
    user_id = await require_current_user(request)
    qr_code_id = _qr_code_id(request)
    service = await get_webhook_service(request)
    config = await service.get_config(qr_code_id, user_id)
    return web.json_response({"webhook": config.public_dump() if config else None})


@routes.put(_WEBHOOK_PATH)
async def upsert_webhook(request: web.Request):
    user_id = await require_current_user(request)
    qr_code_id = _qr_code_id(request)
    dto = parse_body(WebhookConfigUpsertDTO, await read_json(request))

    service = await get_webhook_service(request)
    try:
        config, secret = await service.upsert_config(qr_code_id, user_id, dto)
    except InvalidWebhookConfigError as exc:
        raise web.HTTPBadRequest(text=str(exc)) from exc
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc

    if secret is None:
        return web.json_response({"webhook": config.public_dump()})
    # The secret is shown once, on creation.
    return web.json_response({"webhook": config.public_dump(), "secret": secret}, status=201)


@routes.delete(_WEBHOOK_PATH)
async def delete_webhook(request: web.Request):
    user_id = await require_current_user(request)
    qr_code_id = _qr_code_id(request)
    service = await get_webhook_service(request)
    try:
        await service.delete_config(qr_code_id, user_id)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc
    return web.Response(status=204)


@routes.post(_WEBHOOK_PATH + "/test")
async def send_test_webhook(request: web.Request):
    user_id = await require_current_user(request)
    qr_code_id = _qr_code_id(request)
    dto = parse_body(SendTestDTO, await read_json(request, allow_empty=True))

    service = await get_webhook_service(request)
    try:
        delivery, success = await service.send_test(qr_code_id, user_id, dto.resource)
    except NotFoundError as exc:
        raise web.HTTPNotFound(text=str(exc)) from exc

    return web.json_response(
        {
            "success": success,
            "delivery_id": str(delivery.id),
            "status": delivery.status.value,
            "http_status": delivery.http_status,
            "response_body": delivery.response_body,
            "error_message": delivery.error_message,
        }
    )


@routes.get(_WEBHOOK_PATH + "/deliveries")
async def list_deliveries(request: web.Request):
    user_id = await require_current_user(request)
    qr_code_id = _qr_code_id(request)
    page, limit = pagination_params(request)

    status_param = request.rel_url.query.get("status")
    status: DeliveryStatus | None = None
    if status_param:
        try:
            status = DeliveryStatus(status_param)
        except ValueError as exc:
            raise web.HTTPBadRequest(text=f"Invalid status: {status_param}") from exc

    service = await get_webhook_service(request)
    items, total = await service.list_deliveries(
        qr_code_id, user_id, status=status, limit=limit, offset=(page - 1) * limit
    )
    payload = paginated_response(
        [item.model_dump(mode="json") for item in items],
        page=page,
        limit=limit,
        key="deliveries",
        total=total,
    )
    return web.json_response(payload)
