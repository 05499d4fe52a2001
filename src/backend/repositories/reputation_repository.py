"""
Reputation store for per-client bot scores.

Every write is a single statement so concurrent requests from the same
client cannot lose increments.
"""

from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from core.config import settings
from db.base import clip
from db.dialect import dialect_insert
from models.bot_score import BotScore


class ReputationRepository:
    """Repository for bot score records keyed by (address, user-agent)."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Clock = utcnow,
        suspicious_threshold: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.suspicious_threshold = (
            suspicious_threshold
            if suspicious_threshold is not None
            else settings.SUSPICIOUS_SCORE_THRESHOLD
        )

    async def observe(
        self,
        address: str,
        user_agent: Optional[str],
        score: int,
        device_fingerprint: Optional[str] = None,
    ) -> BotScore:
        """
        Record one scored request.

        The stored score is replaced by ``score``; ``request_count`` and
        ``suspicious_patterns`` only ever grow. The caller commits.
        """
        suspicious = 1 if score > self.suspicious_threshold else 0
        now = self.clock()

        insert = dialect_insert(self.db, BotScore)
        stmt = insert.values(
            ip_address=address,
            user_agent=clip(BotScore.user_agent, user_agent or ""),
            device_fingerprint=device_fingerprint,
            bot_score=score,
            request_count=1,
            suspicious_patterns=suspicious,
            last_updated=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[BotScore.ip_address, BotScore.user_agent],
            set_={
                "bot_score": stmt.excluded.bot_score,
                "device_fingerprint": stmt.excluded.device_fingerprint,
                "request_count": BotScore.request_count + 1,
                "suspicious_patterns": BotScore.suspicious_patterns + suspicious,
                "last_updated": stmt.excluded.last_updated,
            },
        ).returning(BotScore)

        result = await self.db.execute(stmt, execution_options={"populate_existing": True})
        return result.scalar_one()

    async def get(self, address: str, user_agent: Optional[str]) -> Optional[BotScore]:
        """Get the record for one (address, user-agent) pair."""
        result = await self.db.execute(
            select(BotScore)
            .where(
                BotScore.ip_address == address,
                BotScore.user_agent == clip(BotScore.user_agent, user_agent or ""),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_address(self, address: str) -> list[BotScore]:
        """All records of an address, highest score first."""
        result = await self.db.execute(
            select(BotScore)
            .where(BotScore.ip_address == address)
            .order_by(BotScore.bot_score.desc(), BotScore.last_updated.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def top_scores(self, limit: int = 15) -> list[BotScore]:
        """Highest non-zero scores across all clients."""
        result = await self.db.execute(
            select(BotScore)
            .where(BotScore.bot_score > 0)
            .order_by(BotScore.bot_score.desc(), BotScore.request_count.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def apply_amnesty(self, address: str, points: int) -> int:
        """
        Lower every score of ``address`` by ``points``, floor 0.

        Returns the number of records touched. The caller commits.
        """
        result = await self.db.execute(
            update(BotScore)
            .where(BotScore.ip_address == address)
            .values(
                bot_score=case(
                    (BotScore.bot_score > points, BotScore.bot_score - points),
                    else_=0,
                ),
                last_updated=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
