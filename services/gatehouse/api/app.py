"""
FastAPI application factory for the Gatehouse API server.

Uses lifespan handler for startup/shutdown with async resource management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from gatehouse.auth.errors import LoginRequired
from gatehouse.config import check_required_settings, settings
from gatehouse.db.session import close_db, init_db
from gatehouse.logging_config import configure_logging, get_logger
from gatehouse.redis.client import close_redis, init_redis
from gatehouse.services.login_service import build_login_pipeline

from .health import router as health_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    configure_logging(json_logs=settings.json_logs, log_level=settings.log_level)
    logger.info("Starting Gatehouse API server", version="0.1.0")

    # Missing OAuth client settings stop the server here, not on first login.
    check_required_settings(settings)

    await init_db()
    logger.info("Database initialized")

    await init_redis()
    logger.info("Redis initialized")

    app.state.login_pipeline = build_login_pipeline(settings)
    logger.info(
        "Login pipeline initialized",
        guild_lookup=settings.directory.enabled,
        permanent_owner=bool(settings.auth.permanent_owner_id),
    )

    yield

    # Shutdown
    logger.info("Shutting down Gatehouse API server")
    await close_redis()
    await close_db()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Gatehouse API",
        description="Gatehouse - Discord sign-in and guild-role access control",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Ensure every request has a request ID for logging correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        structlog.contextvars.unbind_contextvars("request_id")

        return response

    @app.exception_handler(LoginRequired)
    async def login_required_handler(request: Request, exc: LoginRequired) -> RedirectResponse:
        """Send anonymous visitors of protected routes to the login flow."""
        return RedirectResponse(url=settings.auth.login_path, status_code=status.HTTP_302_FOUND)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled exception", exc_info=exc, path=str(request.url.path))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # Health endpoints (no prefix)
    app.include_router(health_router)

    from gatehouse.api.routers.auth import router as auth_router

    app.include_router(auth_router)

    from gatehouse.api.routers.accounts import router as accounts_router

    app.include_router(accounts_router)

    return app


# Application instance
app = create_application()
