"""
PostgreSQL connection pool (asyncpg).

The pool is a process-wide singleton so warm Lambda invocations reuse open
connections. The cold-start initializer calls connect_database() once per
process (or again after a failure reset).
"""

import os
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from errors import ConfigurationError, DatabaseNotReadyError
from logger import logger

# Singleton pool, reused across invocations
_pool: Optional[asyncpg.Pool] = None


def _sanitize_database_url(url: str) -> str:
    # asyncpg does not understand libpq's sslmode query parameter.
    parts = urlsplit(url)
    if not parts.query:
        return url
    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(params), parts.fragment))


def database_url() -> str:
    url = os.getenv("DATABASE_URL", "").strip()
    if not url:
        raise ConfigurationError("DATABASE_URL is not set.", missing=["DATABASE_URL"])
    return _sanitize_database_url(url)


async def connect_database() -> None:
    """
    Open a fresh pool. Opening the pool verifies the connection.

    Only called while the cold-start state says the database is not
    connected, so an existing pool is treated as stale: it is terminated and
    replaced rather than reused.
    """
    global _pool
    if _pool is not None:
        stale, _pool = _pool, None
        logger.warning("Discarding stale database pool before reconnecting")
        stale.terminate()

    _pool = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=int(os.getenv("DB_POOL_MIN_SIZE", "1")),
        max_size=int(os.getenv("DB_POOL_MAX_SIZE", "5")),
        command_timeout=30,
    )
    logger.info("Database pool created")


async def disconnect_database() -> None:
    global _pool
    if _pool is None:
        return
    pool, _pool = _pool, None
    await pool.close()
    logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool:
    if _pool is None:
        raise DatabaseNotReadyError("Database pool is not initialized. Call connect_database() first.")
    return _pool


async def ping() -> bool:
    """Round-trip a trivial query. Errors propagate to the caller."""
    value = await get_pool().fetchval("SELECT 1")
    return value == 1

