"""Postgres pool and schema for the documents table.

The pool is created lazily by ``ensure_database()`` the first time a
Postgres-backed document store touches it, so services work without an
explicit startup hook. ``init_database()`` and ``close_database()`` remain
available for hosts that manage the lifecycle themselves.
"""

import asyncio
from pathlib import Path
from typing import Optional

import asyncpg
import structlog

from nudge_engine.config import get_settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# Global connection pool
_pool: Optional[asyncpg.Pool] = None

# Guards first-use pool creation and schema setup
_init_lock = asyncio.Lock()


async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Raises:
        RuntimeError: If pool is not initialized
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database() -> asyncpg.Pool:
    """Create the connection pool if it does not exist yet."""
    global _pool

    if _pool is not None:
        return _pool

    settings = get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=1,
            max_size=10,
            command_timeout=30,
        )
        logger.info("database_pool_created", min_size=1, max_size=10)
        return _pool
    except Exception as e:
        logger.error("database_pool_creation_failed", error=str(e))
        raise


async def ensure_database() -> asyncpg.Pool:
    """Return the pool, creating it and applying the documents schema on first use.

    A failed schema setup closes the new pool so the next call retries.
    """
    if _pool is not None:
        return _pool

    async with _init_lock:
        if _pool is None:
            await init_database()
            try:
                await run_migrations()
            except Exception:
                await close_database()
                raise

    return await get_pool()


async def close_database() -> None:
    """Close the database connection pool."""
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("database_pool_closed")


async def run_migrations() -> None:
    """Apply the bundled SQL files in name order.

    Each file is idempotent (IF NOT EXISTS), so re-running is safe.
    """
    pool = await get_pool()

    migration_files = sorted(MIGRATIONS_DIR.glob("*.sql"))
    if not migration_files:
        logger.warning("no_migrations_found", path=str(MIGRATIONS_DIR))
        return

    async with pool.acquire() as conn:
        for migration_file in migration_files:
            try:
                await conn.execute(migration_file.read_text())
                logger.info("migration_applied", file=migration_file.name)
            except Exception as e:
                logger.error(
                    "migration_failed",
                    file=migration_file.name,
                    error=str(e),
                )
                raise
