"""Database connection management using asyncpg."""

import logging
import asyncpg

from fpl_live.config import get_settings

logger = logging.getLogger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


async def init_pool() -> asyncpg.Pool:
    """Initialize the database connection pool."""
    global _pool
    if _pool is not None:
        return _pool

    db_url = get_settings().database_url
    if not db_url:
        raise ValueError(
            "Database connection string not configured. Set DATABASE_URL environment variable."
        )

    logger.info("Initializing database connection pool")
    _pool = await asyncpg.create_pool(
        db_url,
        min_size=1,
        max_size=10,
        command_timeout=30,
    )
    return _pool


async def close_pool() -> None:
    """Close the database connection pool."""
    global _pool
    if _pool is not None:
        logger.info("Closing database connection pool")
        await _pool.close()
        _pool = None
