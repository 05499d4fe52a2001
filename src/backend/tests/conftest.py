"""
Pytest fixtures for BotGuard backend tests.

Each test gets its own SQLite database file so concurrent sessions really
contend on the same rows, the way they would against PostgreSQL.
"""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

# Set test environment variables before importing app
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("TRUST_PROXY_HEADERS", "true")
os.environ.setdefault("CAPTCHA_CLEANUP_ENABLED", "false")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class FrozenClock:
    """Controllable clock for expiry tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 3, 14, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh database with all tables."""
    import models  # noqa: F401
    from db.base import Base

    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'botguard-test.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """A session on the test database."""
    async with session_maker() as session:
        yield session


@pytest.fixture
async def events(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[Any, None]:
    """Security event sink writing to the test database."""
    from services.security_events import SecurityEventSink

    sink = SecurityEventSink(session_maker)
    yield sink
    await sink.drain()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def limiter(session_maker: async_sessionmaker[AsyncSession]) -> Any:
    """Rate limiter counting in the test database."""
    from services.rate_limiter import RateLimiter

    return RateLimiter(session_maker)


@pytest.fixture
async def app(
    session_maker: async_sessionmaker[AsyncSession],
    events: Any,
    limiter: Any,
) -> AsyncGenerator[Any, None]:
    """FastAPI application wired to the test database."""
    from db.session import get_db
    from main import app as fastapi_app
    from services.rate_limiter import get_rate_limiter
    from services.security_events import get_security_event_sink

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_security_event_sink] = lambda: events
    fastapi_app.dependency_overrides[get_rate_limiter] = lambda: limiter
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def browser_headers() -> dict[str, str]:
    """Headers of an ordinary browser XHR; scores 0."""
    return {
        "User-Agent": BROWSER_UA,
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate, br",
        "Referer": "http://localhost:3000/",
        "X-Requested-With": "XMLHttpRequest",
        "X-Forwarded-For": "198.51.100.7",
    }


@pytest.fixture
async def client(app: Any, browser_headers: dict[str, str]) -> AsyncGenerator[AsyncClient, None]:
    """Async test client that looks like a browser."""
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
        headers=browser_headers,
    ) as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": os.environ["ADMIN_API_KEY"], "X-Admin-Actor": "alice"}
