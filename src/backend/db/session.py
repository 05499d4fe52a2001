"""
Async SQLAlchemy engine and session management.

The engine is created lazily from ``settings.DATABASE_URL`` so tests and
scripts can point the application at a different database before first use.
"""

from typing import AsyncGenerator

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.config import settings
from db.base import Base

logger = structlog.get_logger(__name__)

_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get or create the application engine."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.DATABASE_URL,
            echo=settings.SQL_ECHO,
            pool_pre_ping=True,
        )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get the session factory bound to the application engine."""
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


def async_session_maker() -> AsyncSession:
    """Open a new session (``async with async_session_maker() as db: ...``)."""
    return get_session_maker()()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    Uncommitted work is rolled back when the session closes, including when
    the request is cancelled.
    """
    async with get_session_maker()() as session:
        yield session


async def init_db() -> None:
    """Create all tables that do not exist yet."""
    import models  # noqa: F401  (populate metadata)

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", url=get_engine().url.render_as_string(hide_password=True))


async def close_db() -> None:
    """Dispose of the engine and its connection pool."""
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        logger.info("database_closed")
    _engine = None
    _session_maker = None
