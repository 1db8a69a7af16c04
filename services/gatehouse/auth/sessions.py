"""Redis-backed sessions and the account principal they carry.

The browser holds an opaque session token in a cookie. The Redis record
behind it stores only the principal, the account id; the account itself
is re-read on every request so role changes from the next login take
effect immediately.
"""

import json
import secrets
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any

from gatehouse.config import settings
from gatehouse.db.account_store import AccountStore
from gatehouse.db.models import Account, utc_now
from gatehouse.logging_config import get_logger
from gatehouse.redis.client import KEY_PREFIX, get_redis_client

logger = get_logger(__name__)

SESSION_PREFIX = KEY_PREFIX + "session:"

# Minimum interval between session TTL refreshes (seconds).
SESSION_REFRESH_INTERVAL = 300


def _session_ttl() -> int:
    """Session TTL in seconds from config."""
    return settings.auth.session_ttl_hours * 3600


# --- Principal ---


def serialize_principal(account: Account) -> int:
    """Reduce an account to the identifier stored in its session."""
    return account.id


async def deserialize_principal(store: AccountStore, principal: Any) -> Account | None:
    """Resolve a stored principal back to its account.

    A malformed principal or a vanished account means "not authenticated".
    StorageError propagates: a failed lookup says nothing about the account.
    """
    try:
        account_id = int(principal)
    except (TypeError, ValueError):
        logger.warning("Malformed session principal", principal=repr(principal))
        return None

    account = await store.get_by_id(account_id)
    if account is None:
        logger.info("Session principal no longer exists", account_id=account_id)
    return account


# --- Sessions ---


@dataclass
class Session:
    """Server-side session state stored in Redis."""

    account_id: int
    created_at: str  # ISO 8601
    expires_at: str  # ISO 8601
    last_active_at: str  # ISO 8601

    # Not stored in Redis; the token is the key.
    token: str = field(default="", repr=False)


def generate_session_token() -> str:
    """Generate a cryptographically random session token."""
    return secrets.token_urlsafe(32)


async def create_session(account: Account) -> Session:
    """Create a new session for the account. Returns the Session with its token."""
    redis = get_redis_client()
    token = generate_session_token()
    ttl = _session_ttl()
    now = utc_now()

    session = Session(
        account_id=serialize_principal(account),
        created_at=now.isoformat(),
        expires_at=(now + timedelta(seconds=ttl)).isoformat(),
        last_active_at=now.isoformat(),
        token=token,
    )

    data = asdict(session)
    data.pop("token")

    await redis.set(SESSION_PREFIX + token, json.dumps(data), ex=ttl)

    logger.info("Session created", account_id=session.account_id)
    return session


async def get_session(token: str) -> Session | None:
    """Look up a session by token. Returns None if not found or expired."""
    if not token:
        return None

    redis = get_redis_client()
    data = await redis.get(SESSION_PREFIX + token)
    if data is None:
        return None

    try:
        parsed = json.loads(data)
        return Session(token=token, **parsed)
    except (ValueError, TypeError):
        logger.warning("Discarding unreadable session record")
        return None


def _should_refresh_session(session: Session) -> bool:
    """Check if enough time has passed since last refresh."""
    try:
        last_active = datetime.fromisoformat(session.last_active_at)
        return (utc_now() - last_active).total_seconds() > SESSION_REFRESH_INTERVAL
    except (ValueError, TypeError):
        return True


async def refresh_session(session: Session) -> None:
    """Extend session TTL on activity (sliding window)."""
    redis = get_redis_client()
    ttl = _session_ttl()
    now = utc_now()

    session.last_active_at = now.isoformat()
    session.expires_at = (now + timedelta(seconds=ttl)).isoformat()
    data = asdict(session)
    data.pop("token")

    # xx: never resurrect a session revoked since it was read
    await redis.set(SESSION_PREFIX + session.token, json.dumps(data), ex=ttl, xx=True)


async def revoke_session(token: str) -> bool:
    """Revoke a session by deleting it from Redis.

    Returns True if the session existed, False if it was already gone.
    """
    redis = get_redis_client()
    deleted = await redis.delete(SESSION_PREFIX + token) > 0
    if deleted:
        logger.info("Session revoked")
    return deleted

