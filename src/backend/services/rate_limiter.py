"""
Database-backed fixed-window rate limiter.

Keys look like ``"vote:203.0.113.9"``. Each key has one counter row in the
shared database, so every API worker sees the same counts. Counters whose
window has closed are swept at most once per ``sweep_interval_seconds``.
Falls back to allowing requests if the store is unavailable.
"""

import math
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, as_utc, utcnow
from core.exceptions import RateLimitedError
from db.session import async_session_maker
from models.rate_limit import RateLimitCounter
from models.security_event import SecurityEventKind, Severity
from repositories.rate_limit_repository import RateLimitRepository
from services.security_events import SecurityEventSink

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Fixed-window counters keyed by ``scope:identifier``."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        clock: Clock = utcnow,
        sweep_interval_seconds: int = 300,
    ):
        self._session_factory = session_factory or async_session_maker
        self.clock = clock
        self.sweep_interval_seconds = sweep_interval_seconds
        self._last_sweep: Optional[datetime] = None

    def _sweep_due(self) -> bool:
        now = self.clock()
        if (
            self._last_sweep is not None
            and (now - self._last_sweep).total_seconds() < self.sweep_interval_seconds
        ):
            return False
        self._last_sweep = now
        return True

    async def _hit(self, key: str, window_seconds: int) -> Optional[RateLimitCounter]:
        """Count one hit. Returns None when the store could not be reached."""
        try:
            async with self._session_factory() as session:
                repo = RateLimitRepository(session, self.clock)
                if self._sweep_due():
                    swept = await repo.delete_expired()
                    if swept:
                        logger.debug("rate_limit_counters_swept", count=swept)
                counter = await repo.hit(key, window_seconds)
                await session.commit()
                return counter
        except SQLAlchemyError:
            logger.exception("rate_limit_store_failed", key=key)
            return None

    async def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_seconds: int = 60,
    ) -> tuple[bool, int]:
        """
        Check and update the rate limit for a key.

        Returns:
            Tuple of (allowed, remaining)
        """
        counter = await self._hit(key, window_seconds)
        if counter is None:
            return True, max_requests
        return counter.hits <= max_requests, max(0, max_requests - counter.hits)

    def retry_after(self, counter: RateLimitCounter) -> int:
        """Seconds until the counter's window closes."""
        remaining = (as_utc(counter.expires_at) - self.clock()).total_seconds()
        return max(1, math.ceil(remaining))

    async def enforce(
        self,
        scope: str,
        address: str,
        max_requests: int,
        events: SecurityEventSink,
        window_seconds: int = 60,
        endpoint: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> int:
        """
        Count one hit for ``address`` in ``scope`` or raise ``RateLimitedError``.

        Returns the number of hits left in the window.
        """
        key = f"{scope}:{address}"
        counter = await self._hit(key, window_seconds)
        if counter is None:
            return max_requests
        if counter.hits <= max_requests:
            return max_requests - counter.hits

        retry_after = self.retry_after(counter)
        logger.info("rate_limit_exceeded", scope=scope, ip=address, retry_after=retry_after)
        events.record(
            address,
            SecurityEventKind.RATE_LIMITED,
            Severity.MEDIUM,
            details=f"{scope} rate limit exceeded ({max_requests}/{window_seconds}s)",
            endpoint=endpoint,
            user_agent=user_agent,
        )
        raise RateLimitedError(retry_after)


# Singleton instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the process-wide limiter (FastAPI dependency)."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter
