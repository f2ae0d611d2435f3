"""
Async Postgres helpers.

Usage counters and subscriptions live in Postgres. When no URL is
configured the helpers return empty results and callers fall back to
in-memory storage.
"""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from memospark.config import get_settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


def get_database_url() -> Optional[str]:
    """Prefer a direct (non-pooler) URL for long-lived backends if provided."""
    database = get_settings().database
    return database.database_url_direct or database.database_url


def is_database_configured() -> bool:
    return bool(get_database_url())


async def get_pool() -> Optional[asyncpg.Pool]:
    global _pool
    if _pool is not None:
        return _pool

    dsn = get_database_url()
    if not dsn:
        return None

    database = get_settings().database

    # PgBouncer poolers break prepared statements; keep the cache off for both.
    _pool = await asyncpg.create_pool(
        dsn=dsn,
        min_size=database.database_pool_min_size,
        max_size=database.database_pool_max_size,
        statement_cache_size=0,
    )

    logger.info(
        "Postgres pool initialized (min=%s max=%s)",
        database.database_pool_min_size,
        database.database_pool_max_size,
    )
    return _pool


async def fetchrow(query: str, *args):
    pool = await get_pool()
    if not pool:
        return None
    async with pool.acquire() as conn:
        return await conn.fetchrow(query, *args)


async def fetchval(query: str, *args):
    pool = await get_pool()
    if not pool:
        return None
    async with pool.acquire() as conn:
        return await conn.fetchval(query, *args)


async def execute(query: str, *args):
    pool = await get_pool()
    if not pool:
        return None
    async with pool.acquire() as conn:
        return await conn.execute(query, *args)


async def ping() -> bool:
    """Run a trivial query; False when unconfigured or unreachable."""
    if not is_database_configured():
        return False
    try:
        return await fetchval("SELECT 1") == 1
    except (asyncpg.PostgresError, OSError) as e:
        logger.warning("Postgres ping failed: %s", e)
        return False


async def close_pool() -> None:
    """Close the global asyncpg pool (used during graceful shutdown)."""
    global _pool
    if _pool is None:
        return
    try:
        await _pool.close()
    finally:
        _pool = None
