"""Authentication router.

Browser login with Discord:
    GET /login                   start the flow, redirect to Discord
    GET /auth/discord/callback   finish the flow, set the session cookie
    GET /logout                  revoke the session
    GET /dashboard               the signed-in account
    GET /unauthorized            the forbidden landing response

Every failed login ends with a redirect to the public landing page and
no session cookie.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from redis.exceptions import RedisError

from gatehouse.api.dependencies import (
    get_account_store,
    get_login_pipeline,
    require_authenticated,
)
from gatehouse.auth.auth_state import consume_auth_state, generate_state, store_auth_state
from gatehouse.auth.errors import AuthError
from gatehouse.auth.roles import Role
from gatehouse.auth.sessions import create_session, revoke_session
from gatehouse.config import settings
from gatehouse.db.account_store import SqlAccountStore
from gatehouse.db.models import Account
from gatehouse.logging_config import get_logger
from gatehouse.services.login_service import LoginPipeline

router = APIRouter(tags=["auth"])
logger = get_logger(__name__)


# --- Pydantic models ---


class AccountInfo(BaseModel):
    id: int
    external_id: str
    display_name: str
    avatar_ref: str | None
    role: Role
    created_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "AccountInfo":
        return cls(
            id=account.id,
            external_id=account.external_id,
            display_name=account.display_name,
            avatar_ref=account.avatar_ref,
            role=account.role,
            created_at=account.created_at,
        )


# --- Endpoints ---


@router.get("/login")
async def begin_login(
    pipeline: LoginPipeline = Depends(get_login_pipeline),
) -> RedirectResponse:
    """Start the Discord authorization-code flow."""
    provider = pipeline.identity_provider
    state = generate_state()
    await store_auth_state(state, provider.name)

    auth_request = provider.build_authorization_request(state)
    logger.info("Login: redirecting to provider", provider=provider.name)
    return RedirectResponse(url=auth_request.authorize_url, status_code=status.HTTP_302_FOUND)


@router.get("/auth/discord/callback")
async def discord_callback(
    code: str = Query("", description="Authorization code from Discord"),
    state: str = Query("", description="State issued by /login"),
    error: str = Query("", description="Set by Discord when the user denies access"),
    store: SqlAccountStore = Depends(get_account_store),
    pipeline: LoginPipeline = Depends(get_login_pipeline),
) -> RedirectResponse:
    """Finish the login and start a session."""
    if error:
        logger.info("Login cancelled at provider", error=error)
        return _landing_redirect()

    try:
        provider_name = await consume_auth_state(state)
    except RedisError:
        logger.error("Failed to read auth state", exc_info=True)
        return _landing_redirect()
    if provider_name is None:
        return _landing_redirect()

    try:
        account = await pipeline.handle_callback(store, code)
    except AuthError as e:
        logger.warning("Login failed", provider=provider_name, kind=type(e).__name__, error=str(e))
        return _landing_redirect()

    try:
        session = await create_session(account)
    except RedisError:
        logger.error("Failed to create session", account_id=account.id, exc_info=True)
        return _landing_redirect()

    response = RedirectResponse(url=settings.auth.post_login_path, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=settings.auth.session_cookie_name,
        value=session.token,
        max_age=settings.auth.session_ttl_hours * 3600,
        httponly=True,
        secure=settings.auth.cookie_secure,
        samesite="lax",
    )
    logger.info("Login complete", account_id=account.id, role=str(account.role))
    return response


@router.get("/logout")
async def logout(request: Request) -> RedirectResponse:
    """Revoke the current session and clear the cookie."""
    token = request.cookies.get(settings.auth.session_cookie_name, "")
    if token:
        await revoke_session(token)

    response = _landing_redirect()
    response.delete_cookie(settings.auth.session_cookie_name)
    return response


@router.get("/dashboard", response_model=AccountInfo)
async def dashboard(account: Account = Depends(require_authenticated)) -> AccountInfo:
    """The signed-in account."""
    return AccountInfo.from_account(account)


@router.get("/unauthorized")
async def unauthorized() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "unauthorized"})


# --- Helpers ---


def _landing_redirect() -> RedirectResponse:
    return RedirectResponse(url=settings.auth.landing_path, status_code=status.HTTP_302_FOUND)
