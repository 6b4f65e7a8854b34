"""Plain-SQL migrations tracked in ``schema_migrations``."""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable

import asyncpg  # type: ignore[import-untyped]
import structlog
from aiohttp import web

from webhook_service.settings import APP_SETTINGS_KEY, Settings

logger = structlog.get_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_MIGRATION_PATHS = (
    PROJECT_ROOT / "migrations",
    Path("/app/migrations"),
)


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def find_migrations_dir(possible_paths: Iterable[Path]) -> Path | None:
    for path in possible_paths:
        if path.exists():
            return path
    return None


def load_migrations(directory: Path) -> list[Migration]:
    """Read ``*.sql`` files in lexicographic order."""
    if not directory.exists():
        raise FileNotFoundError(f"Migrations directory does not exist: {directory}")
    seen: set[str] = set()
    migrations: list[Migration] = []
    for path in sorted(directory.glob("*.sql")):
        version = path.stem
        if version in seen:
            raise ValueError(f"Duplicate migration version detected: {version}")
        seen.add(version)
        migrations.append(Migration(version, path, path.read_text(encoding="utf-8")))
    return migrations


async def pending_migrations(conn: asyncpg.Connection, migrations: list[Migration]) -> list[Migration]:
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version text PRIMARY KEY,
            checksum text NOT NULL,
            applied_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
    applied = {row["version"]: row["checksum"] for row in rows}
    pending: list[Migration] = []
    for migration in migrations:
        if migration.version in applied:
            if applied[migration.version] != migration.checksum:
                raise RuntimeError(
                    f"Checksum mismatch for {migration.version}: "
                    f"{applied[migration.version]} (db) != {migration.checksum} (file)"
                )
            continue
        pending.append(migration)
    return pending


async def apply_migrations(conn: asyncpg.Connection, migrations: list[Migration]) -> list[str]:
    """Apply every pending migration in its own transaction. Returns applied versions."""
    applied: list[str] = []
    for migration in await pending_migrations(conn, migrations):
        logger.info("applying migration", version=migration.version)
        async with conn.transaction():
            await conn.execute(migration.sql)
            await conn.execute(
                "INSERT INTO schema_migrations (version, checksum) VALUES ($1, $2)",
                migration.version,
                migration.checksum,
            )
        applied.append(migration.version)
    return applied


async def _connect_with_retry(dsn: str, *, attempts: int, delay: float) -> asyncpg.Connection | None:
    for attempt in range(1, attempts + 1):
        try:
            return await asyncpg.connect(dsn)
        except (OSError, asyncpg.PostgresError) as exc:
            logger.warning(
                "migration database connection failed",
                attempt=attempt,
                max_attempts=attempts,
                error=str(exc),
            )
            if attempt < attempts:
                await asyncio.sleep(delay)
    return None


def create_migration_runner(
    possible_paths: Iterable[Path] = DEFAULT_MIGRATION_PATHS,
    *,
    connect_attempts: int = 5,
    connect_delay: float = 2.0,
) -> Callable[[web.Application], Awaitable[None]]:
    """Create an aiohttp startup hook that applies pending migrations."""
    paths = list(possible_paths)

    async def apply_migrations_on_startup(app: web.Application) -> None:
        migrations_dir = find_migrations_dir(paths)
        if migrations_dir is None:
            logger.warning("migrations directory not found", tried=[str(p) for p in paths])
            return
        migrations = load_migrations(migrations_dir)
        if not migrations:
            logger.warning("no migrations found", directory=str(migrations_dir))
            return

        app_settings: Settings = app[APP_SETTINGS_KEY]
        conn = await _connect_with_retry(
            str(app_settings.database_url), attempts=connect_attempts, delay=connect_delay
        )
        if conn is None:
            logger.error("skipping migrations, database unreachable")
            return
        try:
            applied = await apply_migrations(conn, migrations)
        finally:
            await conn.close()
        logger.info("migrations up to date", applied=applied)

    return apply_migrations_on_startup
