"""
Tests for the security report aggregation.
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from repositories.blacklist_repository import BlacklistRepository
from repositories.reputation_repository import ReputationRepository
from repositories.security_event_repository import SecurityEventRepository
from services.security_report import SecurityReportService, risk_label

UA = "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0"


@pytest.mark.unit
class TestRiskLabel:
    @pytest.mark.parametrize(
        "score,label",
        [(100, "high"), (80, "high"), (79, "medium"), (60, "medium"), (59, "low"), (30, "low"), (29, "minimal"), (0, "minimal")],
    )
    def test_labels(self, score: int, label: str) -> None:
        assert risk_label(score) == label


@pytest.mark.unit
class TestSecurityReportService:
    async def seed(self, db: AsyncSession, clock) -> None:
        events = SecurityEventRepository(db, clock)
        await events.add("192.0.2.1", "bot_detected", "high")
        await events.add("192.0.2.1", "blocked_request", "high")
        await events.add("192.0.2.1", "bot_detected", "high")
        await events.add("192.0.2.2", "rate_limit", "medium")
        await events.add("192.0.2.3", "ip_blacklisted", "critical")
        clock.advance(days=2)
        await events.add("192.0.2.2", "captcha_passed", "low")

        blacklist = BlacklistRepository(db, clock)
        await blacklist.upsert("192.0.2.1", "scraper", None)
        await blacklist.upsert("192.0.2.3", "burst", 5)
        clock.advance(minutes=10)
        await blacklist.upsert("192.0.2.4", "burst", 60)

        reputation = ReputationRepository(db, clock)
        await reputation.observe("192.0.2.1", "curl/8.4.0", 100)
        await reputation.observe("192.0.2.2", UA, 65)
        await reputation.observe("192.0.2.5", UA, 0)
        await db.commit()

    async def test_overview(self, db: AsyncSession, clock) -> None:
        await self.seed(db, clock)

        report = await SecurityReportService(db, clock).overview()

        totals = report.totals
        assert totals.total_events == 6
        assert totals.high_severity == 3
        assert totals.critical_severity == 1
        assert totals.bot_detections == 2
        assert totals.rate_limits == 1
        assert totals.last_24h == 1
        assert totals.latest_event is not None

        top = report.top_addresses[0]
        assert top.ip == "192.0.2.1"
        assert top.event_count == 3
        assert top.event_types == ["blocked_request", "bot_detected"]

        status = {entry.ip: entry.status for entry in report.blacklist}
        assert status == {"192.0.2.1": "permanent", "192.0.2.3": "expired", "192.0.2.4": "active"}

        assert [(s.ip, s.risk) for s in report.top_scores] == [
            ("192.0.2.1", "high"),
            ("192.0.2.2", "medium"),
        ]
        assert len(report.recent_events) == 6
        assert report.recent_events[0].event_type == "captcha_passed"

    async def test_overview_serializes_camel_case(self, db: AsyncSession, clock) -> None:
        await self.seed(db, clock)
        body = (await SecurityReportService(db, clock).overview()).model_dump(by_alias=True)

        assert set(body) == {"totals", "topAddresses", "blacklist", "topScores", "recentEvents"}
        assert "botDetections" in body["totals"]

    async def test_empty_database(self, db: AsyncSession) -> None:
        report = await SecurityReportService(db).overview()
        assert report.totals.total_events == 0
        assert report.totals.latest_event is None
        assert report.top_addresses == []

    async def test_events_for_address(self, db: AsyncSession, clock) -> None:
        await self.seed(db, clock)

        report = await SecurityReportService(db, clock).events_for_address("192.0.2.1")
        assert report.blocked is True
        assert len(report.events) == 3
        assert report.scores[0].bot_score == 100

        limited = await SecurityReportService(db, clock).events_for_address("192.0.2.1", limit=1)
        assert len(limited.events) == 1
