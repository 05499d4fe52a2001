"""
Security report.

Read-only aggregation over security events, the blacklist and bot scores for
the admin console and the ``scripts/security_report.py`` CLI.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, as_utc, utcnow
from models.bot_score import BotScore
from models.ip_blacklist import IpBlacklistEntry
from models.security_event import SecurityEvent
from repositories.blacklist_repository import BlacklistRepository
from repositories.reputation_repository import ReputationRepository
from repositories.security_event_repository import SecurityEventRepository
from schemas.security import (
    AddressActivity,
    AddressReport,
    BlacklistStatus,
    BotScoreRecord,
    ReportTotals,
    RiskEntry,
    SecurityEventOut,
    SecurityOverview,
)

TOP_ADDRESSES = 10
TOP_SCORES = 15
RECENT_EVENTS = 20


def risk_label(score: int) -> str:
    """Human label for a bot score."""
    if score >= 80:
        return "high"
    if score >= 60:
        return "medium"
    if score >= 30:
        return "low"
    return "minimal"


def event_out(event: SecurityEvent) -> SecurityEventOut:
    return SecurityEventOut(
        id=event.id,
        ip=event.ip_address,
        user_id=event.user_id,
        event_type=event.event_type,
        severity=event.severity,
        details=event.details,
        user_agent=event.user_agent,
        endpoint=event.endpoint,
        created_at=as_utc(event.created_at),
    )


def score_out(record: BotScore) -> BotScoreRecord:
    return BotScoreRecord(
        ip=record.ip_address,
        user_agent=record.user_agent,
        device_fingerprint=record.device_fingerprint,
        bot_score=record.bot_score,
        request_count=record.request_count,
        suspicious_patterns=record.suspicious_patterns,
        last_updated=as_utc(record.last_updated),
    )


class SecurityReportService:
    """Builds the security overview and per-address reports."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.clock = clock
        self.events = SecurityEventRepository(db, clock)
        self.blacklist = BlacklistRepository(db, clock)
        self.reputation = ReputationRepository(db, clock)

    def _blacklist_status(self, entry: IpBlacklistEntry) -> BlacklistStatus:
        if entry.blocked_until is None:
            status = "permanent"
        elif as_utc(entry.blocked_until) > self.clock():
            status = "active"
        else:
            status = "expired"
        return BlacklistStatus(
            ip=entry.ip_address,
            reason=entry.reason,
            blocked_at=as_utc(entry.blocked_at),
            blocked_until=as_utc(entry.blocked_until) if entry.blocked_until else None,
            created_by=entry.created_by,
            status=status,
        )

    async def overview(self) -> SecurityOverview:
        totals = await self.events.totals()
        if totals["latest_event"] is not None:
            totals["latest_event"] = as_utc(totals["latest_event"])

        top = await self.events.top_addresses(TOP_ADDRESSES)
        kinds = await self.events.kinds_by_address([address for address, _ in top])

        return SecurityOverview(
            totals=ReportTotals(**totals),
            top_addresses=[
                AddressActivity(ip=address, event_count=count, event_types=kinds.get(address, []))
                for address, count in top
            ],
            blacklist=[self._blacklist_status(entry) for entry in await self.blacklist.list_all()],
            top_scores=[
                RiskEntry(
                    ip=record.ip_address,
                    user_agent=record.user_agent,
                    bot_score=record.bot_score,
                    request_count=record.request_count,
                    suspicious_patterns=record.suspicious_patterns,
                    risk=risk_label(record.bot_score),
                )
                for record in await self.reputation.top_scores(TOP_SCORES)
            ],
            recent_events=[event_out(e) for e in await self.events.recent(RECENT_EVENTS)],
        )

    async def events_for_address(self, address: str, limit: int = 50) -> AddressReport:
        """Everything known about one address."""
        return AddressReport(
            ip=address,
            blocked=await self.blacklist.is_blocked(address),
            events=[event_out(e) for e in await self.events.for_address(address, limit)],
            scores=[score_out(r) for r in await self.reputation.list_for_address(address)],
        )
