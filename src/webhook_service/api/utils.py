"""Helper utilities for API handlers."""
from __future__ import annotations

from typing import Any, Type, TypeVar
from uuid import UUID

from aiohttp import web
from pydantic import BaseModel, ValidationError

TModel = TypeVar("TModel", bound=BaseModel)


async def read_json(request: web.Request, *, allow_empty: bool = False) -> dict[str, Any]:
    """Parse JSON body from request, raising HTTPBadRequest on invalid input."""
    if allow_empty and not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except Exception as exc:
        raise web.HTTPBadRequest(text="Invalid JSON payload") from exc
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(text="JSON body must be an object")
    return data


def parse_body(model: Type[TModel], body: dict[str, Any]) -> TModel:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise web.HTTPBadRequest(
            text=exc.json(include_url=False), content_type="application/json"
        ) from exc


def parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value if isinstance(value, str) else str(value))
    except (ValueError, TypeError) as exc:
        raise web.HTTPBadRequest(text=f"Invalid {label}") from exc


def extract_bearer_token(request: web.Request) -> str | None:
    """Return the Bearer token from Authorization, or None when absent/malformed."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[len("Bearer "):].strip()
    return token or None


def pagination_params(
    request: web.Request,
    *,
    default_limit: int = 20,
    max_limit: int = 100,
) -> tuple[int, int]:
    """Return ``(page, limit)`` from ``?page=&limit=``; page is 1-based."""
    query = request.rel_url.query
    try:
        page = int(query.get("page", "1"))
        limit = int(query.get("limit", str(default_limit)))
    except ValueError as exc:
        raise web.HTTPBadRequest(text="page and limit must be integers") from exc
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)
    return page, limit


def paginated_response(
    items: list[Any],
    *,
    page: int,
    limit: int,
    key: str,
    total: int,
) -> dict[str, Any]:
    return {
        key: items,
        "total": total,
        "page": page,
        "limit": limit,
    }
