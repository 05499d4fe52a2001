"""
Blacklist guard.

Answers "is this address banned right now" and lets administrators ban
addresses. The lookup has no side effects.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from models.ip_blacklist import IpBlacklistEntry
from models.security_event import SecurityEventKind, Severity
from repositories.blacklist_repository import BlacklistRepository
from services.security_events import SecurityEventSink

logger = structlog.get_logger(__name__)


class BlacklistGuard:
    """Address ban checks and administration."""

    def __init__(self, db: AsyncSession, events: SecurityEventSink, clock: Clock = utcnow):
        self.db = db
        self.events = events
        self.repository = BlacklistRepository(db, clock)

    async def is_blocked(self, address: str) -> bool:
        """True while a permanent or unexpired ban exists. Expiry is strict."""
        return await self.repository.is_blocked(address)

    async def block(
        self,
        address: str,
        reason: str,
        duration_minutes: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> IpBlacklistEntry:
        """
        Ban ``address`` for ``duration_minutes`` (permanently when None).

        Re-banning an address replaces its previous entry.
        """
        entry = await self.repository.upsert(address, reason, duration_minutes, created_by)
        await self.db.commit()

        duration = f"{duration_minutes} minutes" if duration_minutes else "permanent"
        logger.info("ip_blacklisted", ip=address, duration=duration, created_by=created_by)
        self.events.record(
            address,
            SecurityEventKind.IP_BLACKLISTED,
            Severity.HIGH,
            details=f"IP blacklisted: {reason} (duration: {duration})",
            user_id=created_by,
        )
        return entry
