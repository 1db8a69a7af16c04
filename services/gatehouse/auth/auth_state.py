"""Redis-backed OAuth state for the Discord login flow.

A state value is created in /login and consumed in the callback. It is
one-time: consumption is an atomic GET+DELETE, so a replayed callback
finds nothing.
"""

import secrets

from gatehouse.logging_config import get_logger
from gatehouse.redis.client import KEY_PREFIX, get_redis_client

logger = get_logger(__name__)

AUTH_STATE_PREFIX = KEY_PREFIX + "auth_state:"
AUTH_STATE_TTL = 300  # 5 minutes


def generate_state() -> str:
    """Generate a cryptographically random state parameter."""
    return secrets.token_urlsafe(32)


async def store_auth_state(state: str, provider_name: str) -> None:
    """Remember a pending authorization for AUTH_STATE_TTL seconds."""
    redis = get_redis_client()
    await redis.set(AUTH_STATE_PREFIX + state, provider_name, ex=AUTH_STATE_TTL)
    logger.debug("Stored auth state", provider=provider_name)


async def consume_auth_state(state: str) -> str | None:
    """Consume (get + delete) a pending state. Returns its provider name or None."""
    if not state:
        return None

    redis = get_redis_client()
    key = AUTH_STATE_PREFIX + state

    async with redis.pipeline(transaction=True) as pipe:
        pipe.get(key)
        pipe.delete(key)
        results = await pipe.execute()

    provider_name = results[0]
    if provider_name is None:
        logger.warning("Auth state not found or expired")
        return None
    return provider_name
