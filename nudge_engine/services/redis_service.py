"""Redis-backed per-user locking for nudge orchestration."""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis
import structlog

from nudge_engine.config import get_settings

logger = structlog.get_logger(__name__)

# Global Redis client
_redis_client: Optional[redis.Redis] = None

# In-process fallback locks, used while Redis is unavailable.
# Entries disappear once no caller holds or waits on the lock.
_local_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


async def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis client.

    Returns:
        Redis client or None if connection fails (graceful degradation)
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()

    try:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url.split("@")[-1])
        return _redis_client
    except Exception as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        return None


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_connection_closed")


def _local_lock(user_id: str) -> asyncio.Lock:
    lock = _local_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[user_id] = lock
    return lock


@asynccontextmanager
async def user_lock(user_id: str) -> AsyncIterator[bool]:
    """Serialize nudge orchestration for one user.

    Uses a Redis lock when Redis is reachable, otherwise an in-process
    asyncio lock. If the Redis lock cannot be acquired in time the body
    still runs, unlocked.

    Yields:
        True if the body runs under a lock, False otherwise
    """
    client = await get_redis()

    if client is None:
        async with _local_lock(user_id):
            yield True
        return

    settings = get_settings()
    lock = client.lock(
        f"nudge_lock:{user_id}",
        timeout=settings.nudge_lock_timeout_seconds,
        blocking_timeout=settings.nudge_lock_blocking_timeout_seconds,
    )

    try:
        acquired = await lock.acquire()
    except Exception as e:
        logger.warning("nudge_lock_acquire_failed", user_id=user_id, error=str(e))
        acquired = False

    if not acquired:
        logger.warning("nudge_lock_not_acquired", user_id=user_id)
        yield False
        return

    try:
        yield True
    finally:
        try:
            await lock.release()
        except Exception as e:
            # Lock expired, or the connection dropped and the TTL frees it
            logger.warning("nudge_lock_release_failed", user_id=user_id, error=str(e))
