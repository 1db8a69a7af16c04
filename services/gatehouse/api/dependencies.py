"""FastAPI dependencies for authentication and authorization.

The session token travels in an HTTP-only cookie. It is resolved to a
Redis session, then to the account it names. The account is re-read on
every request, so its role is always the one written by the most recent
login.
"""

from collections.abc import Awaitable, Callable, Collection

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.auth.errors import LoginRequired, StorageError
from gatehouse.auth.gate import has_role, is_authenticated, validate_allowed_roles
from gatehouse.auth.roles import Role
from gatehouse.auth.sessions import (
    _should_refresh_session,
    deserialize_principal,
    get_session,
    refresh_session,
    revoke_session,
)
from gatehouse.config import settings
from gatehouse.db.account_store import SqlAccountStore
from gatehouse.db.models import Account
from gatehouse.db.session import get_db
from gatehouse.logging_config import get_logger
from gatehouse.services.login_service import LoginPipeline

logger = get_logger(__name__)


async def get_account_store(db: AsyncSession = Depends(get_db)) -> SqlAccountStore:
    """Account store bound to the request's database session."""
    return SqlAccountStore(db)


def get_login_pipeline(request: Request) -> LoginPipeline:
    """The login pipeline built during application startup."""
    pipeline = getattr(request.app.state, "login_pipeline", None)
    if pipeline is None:
        raise RuntimeError("Login pipeline not initialized")
    return pipeline


async def get_current_account(
    request: Request,
    store: SqlAccountStore = Depends(get_account_store),
) -> Account | None:
    """Resolve the session cookie to an account, or None.

    A session whose account no longer exists is revoked. When the account
    store fails the session is kept and the request gets a 503.
    """
    token = request.cookies.get(settings.auth.session_cookie_name, "")
    session = await get_session(token)
    if session is None:
        return None

    try:
        account = await deserialize_principal(store, session.account_id)
    except StorageError:
        logger.error(
            "Failed to resolve session principal", account_id=session.account_id, exc_info=True
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account store unavailable",
        ) from None

    if account is None:
        await revoke_session(session.token)
        return None

    # Sliding window: refresh TTL on activity (rate-limited to every 5 min)
    if _should_refresh_session(session):
        await refresh_session(session)

    return account


async def require_authenticated(
    account: Account | None = Depends(get_current_account),
) -> Account:
    """Dependency to require a signed-in account."""
    if not is_authenticated(account):
        raise LoginRequired("Sign in required")
    return account


def require_role(
    allowed_roles: Collection[Role],
) -> Callable[..., Awaitable[Account]]:
    """Build a dependency that admits only the listed roles.

    The list is flat: list owner explicitly if owners should pass.
    """
    allowed = validate_allowed_roles(allowed_roles)

    async def _require_role(account: Account = Depends(require_authenticated)) -> Account:
        if not has_role(account, allowed):
            logger.info(
                "Access denied",
                account_id=account.id,
                role=str(account.role),
                allowed=sorted(str(r) for r in allowed),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="unauthorized",
            )
        return account

    return _require_role
