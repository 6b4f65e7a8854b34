from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from webhook_service.domain.enums import DeliveryStatus
from webhook_service.main import create_app
from webhook_service.settings import Settings

from tests.utils import cron_headers, seed_config, seed_delivery, utcnow

CRON_PATHS = ("/api/v1/cron/webhook-retries", "/api/v1/cron/webhook-cleanup")


@pytest.mark.asyncio
@pytest.mark.parametrize("path", CRON_PATHS)
@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer wrong-secret"},
        {"Authorization": "cron-secret"},
        {"Authorization": "Basic Y3Jvbi1zZWNyZXQ="},
        {"Authorization": "Bearer "},
    ],
)
async def test_cron_rejects_bad_credentials(service_client, mock_get_pool, path, headers):
    resp = await service_client.get(path, headers=headers)
    assert resp.status == 401
    mock_get_pool.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("path", CRON_PATHS)
async def test_cron_rejects_everything_without_configured_secret(aiohttp_client, mock_get_pool, path):
    client = await aiohttp_client(create_app(Settings(cron_secret=None), init_database=False))

    for headers in ({}, {"Authorization": "Bearer "}, cron_headers("anything")):
        resp = await client.get(path, headers=headers)
        assert resp.status == 401
    mock_get_pool.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_sweep_with_nothing_due(service_client):
    resp = await service_client.get("/api/v1/cron/webhook-retries", headers=cron_headers())
    assert resp.status == 200
    assert await resp.json() == {"processed": 0, "succeeded": 0, "failed": 0}


@pytest.mark.asyncio
async def test_retry_sweep_delivers_due_failures(service_client, store, receiver):
    receiver.statuses = [200, 500]
    config = seed_config(store, url=receiver.url)
    now = utcnow()
    older = seed_delivery(
        store, config, status=DeliveryStatus.FAILED, attempt_number=1,
        next_retry_at=now - timedelta(minutes=10),
    )
    newer = seed_delivery(
        store, config, status=DeliveryStatus.FAILED, attempt_number=4,
        next_retry_at=now - timedelta(minutes=1),
    )
    not_due = seed_delivery(
        store, config, status=DeliveryStatus.FAILED, attempt_number=1,
        next_retry_at=now + timedelta(hours=1),
    )
    parked = seed_delivery(store, config, status=DeliveryStatus.FAILED, next_retry_at=None)

    resp = await service_client.get("/api/v1/cron/webhook-retries", headers=cron_headers())
    assert resp.status == 200
    assert await resp.json() == {"processed": 2, "succeeded": 1, "failed": 1}

    # Oldest due delivery goes first.
    assert [h["X-Webhook-Delivery-Id"] for h, _ in receiver.requests] == [str(older.id), str(newer.id)]
    assert store.deliveries[older.id].status is DeliveryStatus.SUCCESS
    assert store.deliveries[older.id].attempt_number == 2
    assert store.deliveries[newer.id].status is DeliveryStatus.EXHAUSTED
    assert store.deliveries[newer.id].next_retry_at is None
    assert store.deliveries[not_due.id] == not_due
    assert store.deliveries[parked.id] == parked


@pytest.mark.asyncio
async def test_retry_sweep_skips_pending_without_first_attempt(service_client, store, receiver):
    config = seed_config(store, url=receiver.url)
    stranded = seed_delivery(store, config, created_at=utcnow() - timedelta(hours=1))

    resp = await service_client.get("/api/v1/cron/webhook-retries", headers=cron_headers())
    assert resp.status == 200
    assert await resp.json() == {"processed": 0, "succeeded": 0, "failed": 0}
    assert receiver.requests == []
    assert store.deliveries[stranded.id].status is DeliveryStatus.PENDING


@pytest.mark.asyncio
async def test_cleanup_purges_old_deliveries(service_client, store):
    config = seed_config(store)
    now = utcnow()
    old_success = seed_delivery(
        store, config, status=DeliveryStatus.SUCCESS, attempt_number=1,
        created_at=now - timedelta(days=31),
    )
    old_failed = seed_delivery(
        store, config, status=DeliveryStatus.FAILED, attempt_number=1,
        next_retry_at=now, created_at=now - timedelta(days=45),
    )
    recent = seed_delivery(store, config, created_at=now - timedelta(days=29))

    resp = await service_client.get("/api/v1/cron/webhook-cleanup", headers=cron_headers())
    assert resp.status == 200
    body = await resp.json()
    assert body["deleted"] == 2
    cutoff = datetime.fromisoformat(body["cutoff_date"])
    assert now - timedelta(days=30) <= cutoff <= utcnow() - timedelta(days=30)

    assert old_success.id not in store.deliveries
    assert old_failed.id not in store.deliveries
    assert recent.id in store.deliveries
