from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import ClientSession

from webhook_service.main import create_app
from webhook_service.settings import Settings

from tests.utils import FakeConfigRepository, FakeDeliveryRepository, InMemoryStore, WebhookReceiver

CRON_SECRET = "cron-secret"


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def app_settings():
    return Settings(cron_secret=CRON_SECRET, webhook_retry_pause_seconds=0)


@pytest.fixture
def mock_get_pool(store):
    """Swap the asyncpg-backed repositories for in-memory ones sharing ``store``."""
    with patch(
        "webhook_service.services.dependencies.get_pool",
        new_callable=AsyncMock,
        return_value=AsyncMock(),
    ) as get_pool, patch(
        "webhook_service.services.dependencies.WebhookConfigRepository",
        side_effect=lambda _pool: FakeConfigRepository(store),
    ), patch(
        "webhook_service.services.dependencies.WebhookDeliveryRepository",
        side_effect=lambda _pool: FakeDeliveryRepository(store),
    ):
        yield get_pool


@pytest.fixture
async def service_client(aiohttp_client, app_settings, mock_get_pool):
    """Client for calling the service API without a database."""
    app = create_app(app_settings, init_database=False)
    return await aiohttp_client(app)


@pytest.fixture
async def receiver():
    hook = WebhookReceiver()
    await hook.start()
    yield hook
    await hook.stop()


@pytest.fixture
async def http_session():
    async with ClientSession() as session:
        yield session
