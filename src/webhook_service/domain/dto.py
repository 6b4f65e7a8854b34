"""Pydantic DTOs for request bodies and service inputs."""
from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webhook_service.domain.enums import WebhookEventType

KNOWN_EVENT_TYPES = frozenset(e.value for e in WebhookEventType)


class WebhookConfigUpsertDTO(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = Field(min_length=1)
    is_active: bool = True
    events: list[str] = Field(default_factory=lambda: [WebhookEventType.SCAN.value])

    @field_validator("events")
    @classmethod
    def _normalize_events(cls, value: list[str]) -> list[str]:
        events = [e.strip() for e in value if e and e.strip()]
        events = list(dict.fromkeys(events))
        if not events:
            raise ValueError("events must be a non-empty list")
        unknown = [e for e in events if e not in KNOWN_EVENT_TYPES]
        if unknown:
            raise ValueError(f"unsupported event types: {', '.join(unknown)}")
        return events


class ResourceSummaryInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = "Untitled QR code"
    short_code: str | None = None
    content_type: str | None = None

    def for_resource(self, qr_code_id: UUID) -> "ResourceSummary":
        return ResourceSummary(id=qr_code_id, **self.model_dump())


class ResourceSummary(ResourceSummaryInput):
    """The QR code a delivery is about, as shown to the receiver."""

    id: UUID


class ScanEventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["scan"] = "scan"
    scanned_at: datetime
    device_type: str | None = None
    os: str | None = None
    browser: str | None = None
    country: str | None = None
    city: str | None = None
    region: str | None = None


# Tagged union of event payloads; ``type`` is the discriminant.
EventData = ScanEventData


class EventIngestDTO(BaseModel):
    """Body of the internal event endpoint called by the scan recorder."""

    model_config = ConfigDict(extra="ignore")

    event_id: str | None = None
    event: EventData
    resource: ResourceSummaryInput = Field(default_factory=ResourceSummaryInput)


class SendTestDTO(BaseModel):
    model_config = ConfigDict(extra="ignore")

    resource: ResourceSummaryInput = Field(default_factory=ResourceSummaryInput)
