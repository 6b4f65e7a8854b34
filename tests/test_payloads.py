from datetime import datetime, timezone
from uuid import uuid4

import pytest

from webhook_service.domain.dto import ResourceSummaryInput, ScanEventData
from webhook_service.services.payloads import build_payload
from webhook_service.services.webhooks import mock_scan_event


def test_scan_payload_shape():
    delivery_id = uuid4()
    qr_code_id = uuid4()
    scanned_at = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)
    event = ScanEventData(
        scanned_at=scanned_at,
        device_type="mobile",
        os="Android",
        browser="Chrome",
        country="Brazil",
        city="Recife",
        region="Pernambuco",
    )
    resource = ResourceSummaryInput(name="Menu", short_code="abc123", content_type="url")

    payload = build_payload(delivery_id, "evt_1", event, resource.for_resource(qr_code_id))

    assert payload == {
        "delivery_id": str(delivery_id),
        "event": {
            "type": "scan",
            "id": "evt_1",
            "scan": {
                "scanned_at": "2026-03-01T12:30:00+00:00",
                "device_type": "mobile",
                "os": "Android",
                "browser": "Chrome",
                "country": "Brazil",
                "city": "Recife",
                "region": "Pernambuco",
            },
        },
        "resource": {
            "id": str(qr_code_id),
            "name": "Menu",
            "short_code": "abc123",
            "content_type": "url",
        },
    }


def test_missing_fields_are_null_and_resource_name_defaults():
    event = ScanEventData(scanned_at=datetime.now(timezone.utc))
    payload = build_payload(uuid4(), None, event, ResourceSummaryInput().for_resource(uuid4()))

    assert payload["event"]["id"] is None
    assert payload["event"]["scan"]["city"] is None
    assert payload["resource"]["name"] == "Untitled QR code"
    assert payload["resource"]["short_code"] is None


def test_unknown_event_type_is_rejected():
    event = ScanEventData.model_construct(type="purchase", scanned_at=datetime.now(timezone.utc))
    with pytest.raises(ValueError, match="Unsupported event type"):
        build_payload(uuid4(), None, event, ResourceSummaryInput().for_resource(uuid4()))


def test_mock_scan_event():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    event = mock_scan_event(now)
    assert event.scanned_at == now
    assert (event.device_type, event.os, event.browser) == ("mobile", "iOS", "Safari")
    assert (event.country, event.city, event.region) == ("United States", "San Francisco", "California")
