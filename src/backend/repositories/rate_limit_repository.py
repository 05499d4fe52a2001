"""
Rate limit counter repository.

A hit is one upsert: the counter is created, incremented, or reset when its
window has expired, and the new count comes back via RETURNING.
"""

from datetime import timedelta

from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from db.dialect import dialect_insert
from models.rate_limit import RateLimitCounter


class RateLimitRepository:
    """Repository for fixed-window rate limit counters."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def hit(self, key: str, window_seconds: int) -> RateLimitCounter:
        """Count one hit for ``key``. The caller commits."""
        now = self.clock()
        expires_at = now + timedelta(seconds=window_seconds)
        expired = RateLimitCounter.expires_at <= now

        insert = dialect_insert(self.db, RateLimitCounter)
        stmt = insert.values(key=key, hits=1, window_start=now, expires_at=expires_at)
        stmt = stmt.on_conflict_do_update(
            index_elements=[RateLimitCounter.key],
            set_={
                "hits": case((expired, 1), else_=RateLimitCounter.hits + 1),
                "window_start": case((expired, now), else_=RateLimitCounter.window_start),
                "expires_at": case((expired, expires_at), else_=RateLimitCounter.expires_at),
            },
        ).returning(RateLimitCounter)

        result = await self.db.execute(stmt, execution_options={"populate_existing": True})
        return result.scalar_one()

    async def delete_expired(self) -> int:
        """Drop counters whose window has closed."""
        result = await self.db.execute(
            delete(RateLimitCounter)
            .where(RateLimitCounter.expires_at <= self.clock())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(RateLimitCounter))
        return result.scalar_one()
