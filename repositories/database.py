# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================
# STATUS: Core - Async PostgreSQL connection management
# PURPOSE: Provide connection pooling for psycopg3 async
# CREATED: 19 OCT 2026
# ============================================================================
"""
Database Connection Pool

Manages async PostgreSQL connections using psycopg3 and psycopg_pool.
Singleton pattern ensures one pool per process.

Connection string comes from DATABASE_URL or the POSTGRES_* variables.

Usage:
    from repositories.database import get_pool

    pool = await get_pool()
    async with pool.connection() as conn:
        result = await conn.execute("SELECT 1")
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from psycopg import sql
from psycopg_pool import AsyncConnectionPool

logger = logging.getLogger(__name__)

# Global pool instance
_pool: Optional[AsyncConnectionPool] = None


def get_connection_string() -> str:
    """
    Get database connection string from environment.

    Priority:
    1. DATABASE_URL environment variable
    2. Individual POSTGRES_* components

    Returns:
        PostgreSQL connection string
    """
    if url := os.environ.get("DATABASE_URL"):
        return url

    host = os.environ.get("POSTGRES_HOST", "localhost")
    port = os.environ.get("POSTGRES_PORT", "5432")
    name = os.environ.get("POSTGRES_DB", "postgres")
    user = os.environ.get("POSTGRES_USER", "postgres")
    password = os.environ.get("POSTGRES_PASSWORD", "")
    sslmode = os.environ.get("POSTGRES_SSLMODE", "prefer")

    return f"postgresql://{user}:{password}@{host}:{port}/{name}?sslmode={sslmode}"


def mask_connection_string(conninfo: str) -> str:
    """Strip credentials before logging a connection string."""
    if "@" in conninfo:
        return conninfo.split("@")[-1]
    if "password=" in conninfo:
        head, _, tail = conninfo.partition("password=")
        rest = tail.split(" ", 1)
        return head + "password=***" + (" " + rest[1] if len(rest) > 1 else "")
    return conninfo


async def init_pool(
    min_size: int = 2,
    max_size: int = 10,
    connection_string: Optional[str] = None,
) -> AsyncConnectionPool:
    """
    Initialize the global connection pool.

    Args:
        min_size: Minimum connections to maintain
        max_size: Maximum connections allowed
        connection_string: Override connection string (defaults to env)

    Returns:
        AsyncConnectionPool instance
    """
    global _pool

    if _pool is not None:
        logger.warning("Pool already initialized, returning existing pool")
        return _pool

    conninfo = connection_string or get_connection_string()
    logger.info(f"Initializing connection pool: {mask_connection_string(conninfo)}")

    _pool = AsyncConnectionPool(
        conninfo=conninfo,
        min_size=min_size,
        max_size=max_size,
        open=False,  # We'll open it explicitly
    )

    await _pool.open()
    logger.info(f"Connection pool opened (min={min_size}, max={max_size})")

    return _pool


async def get_pool() -> AsyncConnectionPool:
    """
    Get the global connection pool, initializing if needed.

    Returns:
        AsyncConnectionPool instance
    """
    if _pool is None:
        await init_pool()

    return _pool


async def close_pool() -> None:
    """Close the global connection pool."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("Connection pool closed")


@asynccontextmanager
async def get_connection():
    """
    Get a connection from the pool.

    Usage:
        async with get_connection() as conn:
            await conn.execute(...)
    """
    pool = await get_pool()
    async with pool.connection() as conn:
        yield conn


class DatabasePool:
    """
    Context manager for pool lifecycle.

    Usage:
        async with DatabasePool() as pool:
            store = JobRepository(pool)
    """

    def __init__(
        self,
        min_size: int = 2,
        max_size: int = 10,
        connection_string: Optional[str] = None,
    ):
        self.min_size = min_size
        self.max_size = max_size
        self.connection_string = connection_string
        self._pool: Optional[AsyncConnectionPool] = None

    async def __aenter__(self) -> AsyncConnectionPool:
        self._pool = await init_pool(
            min_size=self.min_size,
            max_size=self.max_size,
            connection_string=self.connection_string,
        )
        return self._pool

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await close_pool()


# ============================================================================
# SCHEMA CONSTANTS
# ============================================================================

SCHEMA = "jobqueue"

# Table identifiers. Use with psycopg sql.SQL().format() for injection-safe queries
TABLE_JOBS = sql.Identifier(SCHEMA, "jobs")
TABLE_DEPENDENCIES = sql.Identifier(SCHEMA, "job_dependencies")
TABLE_RELATED_ENTITIES = sql.Identifier(SCHEMA, "job_related_entities")
