"""Asyncpg connection pool helpers."""
from __future__ import annotations

import asyncpg  # type: ignore[import-untyped]
from aiohttp import web

from webhook_service.settings import APP_SETTINGS_KEY, Settings

pool: asyncpg.Pool | None = None


async def init_pool(app: web.Application) -> None:
    """Initialize the global asyncpg pool from the app's settings."""
    global pool
    if pool is None:
        app_settings: Settings = app[APP_SETTINGS_KEY]
        pool = await asyncpg.create_pool(
            dsn=str(app_settings.database_url),
            max_size=app_settings.db_pool_size,
        )


async def close_pool(_app: web.Application | None = None) -> None:
    """Close pool on shutdown."""
    global pool
    if pool is not None:
        await pool.close()
        pool = None


async def get_pool() -> asyncpg.Pool:
    """Return the initialized asyncpg pool."""
    if pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")
    return pool
