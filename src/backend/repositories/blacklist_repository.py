"""
IP blacklist repository.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from db.base import clip
from db.dialect import dialect_insert
from models.ip_blacklist import IpBlacklistEntry


class BlacklistRepository:
    """Repository for address bans."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def is_blocked(self, address: str) -> bool:
        """True when a permanent or still-running ban exists for ``address``."""
        now = self.clock()
        result = await self.db.execute(
            select(IpBlacklistEntry.id)
            .where(
                IpBlacklistEntry.ip_address == address,
                or_(
                    IpBlacklistEntry.blocked_until.is_(None),
                    IpBlacklistEntry.blocked_until > now,
                ),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get(self, address: str) -> Optional[IpBlacklistEntry]:
        result = await self.db.execute(
            select(IpBlacklistEntry).where(IpBlacklistEntry.ip_address == address)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        address: str,
        reason: str,
        duration_minutes: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> IpBlacklistEntry:
        """
        Create or replace the ban for ``address``.

        A ``None`` duration makes the ban permanent. The caller commits.
        """
        now = self.clock()
        blocked_until: Optional[datetime] = (
            now + timedelta(minutes=duration_minutes) if duration_minutes else None
        )

        insert = dialect_insert(self.db, IpBlacklistEntry)
        stmt = insert.values(
            ip_address=address,
            reason=reason,
            blocked_at=now,
            blocked_until=blocked_until,
            created_by=clip(IpBlacklistEntry.created_by, created_by),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[IpBlacklistEntry.ip_address],
            set_={
                "reason": stmt.excluded.reason,
                "blocked_at": stmt.excluded.blocked_at,
                "blocked_until": stmt.excluded.blocked_until,
                "created_by": stmt.excluded.created_by,
            },
        ).returning(IpBlacklistEntry)

        result = await self.db.execute(stmt, execution_options={"populate_existing": True})
        return result.scalar_one()

    async def list_all(self) -> list[IpBlacklistEntry]:
        """All entries, newest first, expired ones included."""
        result = await self.db.execute(
            select(IpBlacklistEntry).order_by(IpBlacklistEntry.blocked_at.desc())
        )
        return list(result.scalars().all())
