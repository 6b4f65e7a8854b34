#!/usr/bin/env python3
"""Apply webhook-service SQL migrations from the command line."""
from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path

import asyncpg

from webhook_service.db.migrations import (
    PROJECT_ROOT,
    apply_migrations,
    load_migrations,
    pending_migrations,
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Apply SQL migrations sequentially.")
    parser.add_argument(
        "--database-url",
        "-d",
        default=os.getenv("DATABASE_URL"),
        help="PostgreSQL connection string. Defaults to DATABASE_URL env variable.",
    )
    parser.add_argument(
        "--migrations-dir",
        "-m",
        type=Path,
        default=PROJECT_ROOT / "migrations",
        help="Directory with *.sql migrations (sorted lexicographically).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list pending migrations without applying.",
    )
    return parser.parse_args()


async def run(database_url: str, migrations_dir: Path, dry_run: bool) -> None:
    migrations = load_migrations(migrations_dir)
    if not migrations:
        raise ValueError(f"No *.sql files found in {migrations_dir}")
    conn = await asyncpg.connect(database_url)
    try:
        if dry_run:
            pending = await pending_migrations(conn, migrations)
            if not pending:
                print("No pending migrations.")
            for migration in pending:
                print(f"Pending: {migration.path.name}")
            return
        applied = await apply_migrations(conn, migrations)
        if applied:
            print(f"Applied {len(applied)} migration(s): {', '.join(applied)}")
        else:
            print("No pending migrations.")
    finally:
        await conn.close()


def main() -> None:
    args = parse_args()
    if not args.database_url:
        raise SystemExit("DATABASE_URL is not set. Use --database-url or export DATABASE_URL.")
    asyncio.run(run(args.database_url, args.migrations_dir, args.dry_run))


if __name__ == "__main__":
    main()
