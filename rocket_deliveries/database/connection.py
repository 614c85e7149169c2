"""Database connection and session management."""
from collections.abc import AsyncGenerator
from typing import Any, Dict

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_fixed

from rocket_deliveries.config import get_settings
from rocket_deliveries.database.models import Base

logger = structlog.get_logger(__name__)

# Global engine and session factory, created on first use
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the database engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine instance
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        kwargs: Dict[str, Any] = {"echo": settings.database_echo}
        if not settings.database_url.startswith("sqlite"):
            kwargs.update(
                pool_pre_ping=True,  # Verify connections before using
                pool_recycle=3600,  # Recycle connections after 1 hour
            )
        _engine = create_async_engine(settings.database_url, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the session factory.

    Returns:
        async_sessionmaker: SQLAlchemy async session factory
    """
    global _async_session_factory
    if _async_session_factory is None:
        engine = get_engine()
        _async_session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, Any]:
    """
    Dependency for getting database sessions.

    Yields:
        AsyncSession: Database session

    Example:
        @router.get("/dashboard")
        async def dashboard(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _log_connect_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "database_connection_error",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


async def init_db() -> None:
    """
    Initialize database tables.

    Keeps retrying the initial connection so the app can start before the
    database is reachable.
    """
    settings = get_settings()
    engine = get_engine()
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(settings.database_connect_attempts),
        wait=wait_fixed(settings.database_connect_wait),
        before_sleep=_log_connect_retry,
        reraise=True,
    ):
        with attempt:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections and dispose of the engine."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
