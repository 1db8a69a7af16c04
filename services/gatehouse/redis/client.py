"""
Redis client for the Gatehouse session store.

Sessions and pending OAuth states live here. The client is created and
closed by the application lifespan, mirroring db/session.py.
"""

import redis.asyncio as aioredis

from gatehouse.config import settings
from gatehouse.logging_config import get_logger

logger = get_logger(__name__)

# All Gatehouse keys share this prefix so the instance can be shared.
KEY_PREFIX = "gh:"

_redis: aioredis.Redis | None = None


async def init_redis(url: str | None = None) -> None:
    """Open the Redis connection pool and verify it responds."""
    global _redis  # noqa: PLW0603
    logger.info("Initializing Redis connection")
    _redis = aioredis.from_url(url or str(settings.redis_url), decode_responses=True)
    await _redis.ping()
    logger.info("Redis connection established")


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis  # noqa: PLW0603
    if _redis is not None:
        logger.info("Closing Redis connection pool")
        await _redis.aclose()
        _redis = None


def get_redis_client() -> aioredis.Redis:
    """Return the Redis client. Raises if not initialized."""
    if _redis is None:
        raise RuntimeError("Redis client not initialized; call init_redis() first")
    return _redis


async def get_redis_health() -> bool:
    """Check Redis health for readiness probe."""
    if _redis is None:
        return False
    try:
        await _redis.ping()
    except aioredis.RedisError as e:
        logger.error("Redis health check failed", error=str(e))
        return False
    return True
