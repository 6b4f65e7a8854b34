"""Outbound webhook envelope."""
from __future__ import annotations

from typing import Any, Callable
from uuid import UUID

from webhook_service.domain.dto import EventData, ResourceSummary, ScanEventData


def _scan_fields(event: ScanEventData) -> dict[str, Any]:
    return {
        "scanned_at": event.scanned_at.isoformat(),
        "device_type": event.device_type,
        "os": event.os,
        "browser": event.browser,
        "country": event.country,
        "city": event.city,
        "region": event.region,
    }


_EVENT_BUILDERS: dict[str, Callable[[Any], dict[str, Any]]] = {
    "scan": _scan_fields,
}


def build_payload(
    delivery_id: UUID,
    event_ref: str | None,
    event: EventData,
    resource: ResourceSummary,
) -> dict[str, Any]:
    """Assemble the JSON body stored on a delivery and sent on every attempt."""
    try:
        fields = _EVENT_BUILDERS[event.type]
    except KeyError as exc:
        raise ValueError(f"Unsupported event type: {event.type}") from exc
    return {
        "delivery_id": str(delivery_id),
        "event": {
            "type": event.type,
            "id": event_ref,
            event.type: fields(event),
        },
        "resource": {
            "id": str(resource.id),
            "name": resource.name,
            "short_code": resource.short_code,
            "content_type": resource.content_type,
        },
    }
