"""
Account database access for the Gatehouse API server.

The lifespan opens one async engine in init_db() and disposes it in
close_db(). Each request gets its own AsyncSession from get_db(), which
the route layer wraps in a SqlAccountStore.

Transactions: the login pipeline commits the reconciled account itself,
before the session cookie is issued, and rolls back on StorageError.
Other routes only read, so get_db() merely ends whatever transaction
is still open when the handler returns.
"""

from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from gatehouse.config import settings
from gatehouse.logging_config import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db(url: str | None = None) -> None:
    """Create the engine and check that the accounts database answers."""
    global _engine, _async_session_factory  # noqa: PLW0603
    logger.info("Initializing database connection")

    _engine = create_async_engine(
        url or str(settings.database_url),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    # expire_on_commit=False: the account returned by a login is still
    # read after the pipeline's commit to build the session.
    _async_session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with _engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connection established")


async def close_db() -> None:
    """Dispose the engine. Safe to call when init_db() never ran."""
    global _engine, _async_session_factory  # noqa: PLW0603
    if _engine is None:
        return
    logger.info("Closing database connection pool")
    await _engine.dispose()
    _engine = None
    _async_session_factory = None


async def get_db() -> AsyncGenerator[AsyncSession]:
    """Request-scoped session.

    An exception from the handler rolls back. Otherwise any transaction
    still open (a read, or writes the handler did not commit) is committed.
    """
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized; call init_db() first")

    async with _async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        if session.in_transaction():
            await session.commit()


async def get_db_health() -> bool:
    """Readiness check: True when a trivial query succeeds."""
    if _engine is None:
        return False
    try:
        async with _engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        return False
    return True
