"""Core database connection pool management for the activity history."""

import logging
from contextlib import asynccontextmanager

from psycopg_pool import AsyncConnectionPool

from portal.config import PostgresSettings

_logger = logging.getLogger(__name__)

# Global connection pool, only present when activity persistence is enabled
_pool: AsyncConnectionPool | None = None

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS activity (
    id BIGSERIAL PRIMARY KEY,
    kind TEXT NOT NULL,
    event_id TEXT NOT NULL,
    actor TEXT NULL,
    ts TIMESTAMPTZ NOT NULL,
    payload JSONB NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_activity_ts ON activity (ts DESC);
CREATE INDEX IF NOT EXISTS idx_activity_event_ts ON activity (event_id, ts DESC);
"""


async def init_pool(settings: PostgresSettings) -> None:
    global _pool
    if _pool is not None:
        return
    _pool = AsyncConnectionPool(
        settings.get_dsn(),
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.pool_timeout,
        check=AsyncConnectionPool.check_connection,
        open=False,
    )
    await _pool.open()
    _logger.info(
        "Database connection pool initialized (min=%d, max=%d, timeout=%ss)",
        settings.pool_min_size, settings.pool_max_size, settings.pool_timeout,
    )
    await _ensure_schema()


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        _logger.info("Database connection pool closed")


def get_pool() -> AsyncConnectionPool | None:
    """Get the connection pool instance."""
    return _pool


@asynccontextmanager
async def _get_connection():
    if _pool is None:
        raise RuntimeError("Database pool not initialized")
    async with _pool.connection() as conn:
        await conn.set_autocommit(True)
        yield conn


async def _ensure_schema() -> None:
    async with _get_connection() as conn:
        await conn.execute(SCHEMA_SQL)
