"""
Security event repository.

Writes are append-only. The read side backs the admin console and the
security report.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from db.base import clip
from models.security_event import SecurityEvent, SecurityEventKind, Severity


class SecurityEventRepository:
    """Repository for security audit events."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def add(
        self,
        address: str,
        kind: str,
        severity: str,
        details: Optional[str] = None,
        endpoint: Optional[str] = None,
        user_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SecurityEvent:
        event = SecurityEvent(
            ip_address=address,
            user_id=clip(SecurityEvent.user_id, user_id),
            event_type=kind,
            severity=severity,
            details=details,
            user_agent=clip(SecurityEvent.user_agent, user_agent),
            endpoint=clip(SecurityEvent.endpoint, endpoint),
            created_at=self.clock(),
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def recent(self, limit: int = 50) -> list[SecurityEvent]:
        result = await self.db.execute(
            select(SecurityEvent)
            .order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def for_address(self, address: str, limit: int = 50) -> list[SecurityEvent]:
        result = await self.db.execute(
            select(SecurityEvent)
            .where(SecurityEvent.ip_address == address)
            .order_by(SecurityEvent.created_at.desc(), SecurityEvent.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def totals(self) -> dict[str, Optional[int | datetime]]:
        """Event counts used by the security report."""
        since = self.clock() - timedelta(hours=24)
        result = await self.db.execute(
            select(
                func.count(SecurityEvent.id),
                func.count(SecurityEvent.id).filter(SecurityEvent.severity == Severity.HIGH.value),
                func.count(SecurityEvent.id).filter(
                    SecurityEvent.severity == Severity.CRITICAL.value
                ),
                func.count(SecurityEvent.id).filter(
                    SecurityEvent.event_type == SecurityEventKind.BOT_DETECTED.value
                ),
                func.count(SecurityEvent.id).filter(
                    SecurityEvent.event_type == SecurityEventKind.RATE_LIMITED.value
                ),
                func.count(SecurityEvent.id).filter(SecurityEvent.created_at > since),
                func.max(SecurityEvent.created_at),
            )
        )
        total, high, critical, bots, rate_limits, last_24h, latest = result.one()
        return {
            "total_events": total,
            "high_severity": high,
            "critical_severity": critical,
            "bot_detections": bots,
            "rate_limits": rate_limits,
            "last_24h": last_24h,
            "latest_event": latest,
        }

    async def top_addresses(self, limit: int = 10) -> list[tuple[str, int]]:
        """Addresses with the most events."""
        count = func.count(SecurityEvent.id).label("event_count")
        result = await self.db.execute(
            select(SecurityEvent.ip_address, count)
            .group_by(SecurityEvent.ip_address)
            .order_by(count.desc(), SecurityEvent.ip_address)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def kinds_by_address(self, addresses: list[str]) -> dict[str, list[str]]:
        """Distinct event kinds seen for each address."""
        if not addresses:
            return {}
        result = await self.db.execute(
            select(SecurityEvent.ip_address, SecurityEvent.event_type)
            .where(SecurityEvent.ip_address.in_(addresses))
            .distinct()
            .order_by(SecurityEvent.ip_address, SecurityEvent.event_type)
        )
        kinds: dict[str, list[str]] = {address: [] for address in addresses}
        for address, kind in result.all():
            kinds[address].append(kind)
        return kinds
