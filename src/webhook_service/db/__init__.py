"""Database helpers (asyncpg pool, SQL migrations)."""
