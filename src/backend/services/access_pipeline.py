"""
Access decision pipeline.

Runs on every mutating request:

1. Blacklisted addresses are rejected outright.
2. The request is scored and the score is folded into the client's
   reputation record.
3. Scores at or above the challenge threshold require a CAPTCHA.
4. Scores at or above the flag threshold are let through but flagged.

The reputation store is advisory. If it fails, the request is judged on the
freshly computed score alone.
"""

from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from core.config import settings
from models.security_event import SecurityEventKind, Severity
from repositories.blacklist_repository import BlacklistRepository
from repositories.reputation_repository import ReputationRepository
from schemas.security import AccessDecision, AccessOutcome, RequestSignals
from services.bot_scorer import BotScorer, bot_scorer
from services.security_events import SecurityEventSink

logger = structlog.get_logger(__name__)


class AccessPipeline:
    """Combine blacklist, scorer and reputation into one decision."""

    def __init__(
        self,
        db: AsyncSession,
        events: SecurityEventSink,
        scorer: BotScorer = bot_scorer,
        clock: Clock = utcnow,
        challenge_threshold: Optional[int] = None,
        flag_threshold: Optional[int] = None,
    ):
        self.db = db
        self.events = events
        self.scorer = scorer
        self.blacklist = BlacklistRepository(db, clock)
        self.reputation = ReputationRepository(db, clock)
        self.challenge_threshold = (
            challenge_threshold
            if challenge_threshold is not None
            else settings.BOT_CHALLENGE_THRESHOLD
        )
        self.flag_threshold = (
            flag_threshold if flag_threshold is not None else settings.BOT_FLAG_THRESHOLD
        )

    async def _is_blocked(self, address: str) -> bool:
        try:
            return await self.blacklist.is_blocked(address)
        except SQLAlchemyError as e:
            logger.error("blacklist_lookup_failed", ip=address, error=str(e))
            await self.db.rollback()
            return False

    async def _observe(
        self,
        signals: RequestSignals,
        score: int,
        device_fingerprint: Optional[str],
    ) -> None:
        try:
            await self.reputation.observe(
                signals.address, signals.user_agent, score, device_fingerprint
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error("reputation_update_failed", ip=signals.address, error=str(e))
            await self.db.rollback()

    async def evaluate(
        self,
        signals: RequestSignals,
        endpoint: str,
        device_fingerprint: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> AccessDecision:
        """Decide what to do with one request."""
        address = signals.address

        if await self._is_blocked(address):
            self.events.record(
                address,
                SecurityEventKind.BLOCKED_REQUEST,
                Severity.HIGH,
                details="Request from blacklisted IP",
                endpoint=endpoint,
                user_id=user_id,
                user_agent=signals.user_agent,
            )
            return AccessDecision(outcome=AccessOutcome.REJECT)

        reasons = self.scorer.explain(signals)
        score = self.scorer.score(signals)
        await self._observe(signals, score, device_fingerprint)

        if score >= self.challenge_threshold:
            self.events.record(
                address,
                SecurityEventKind.BOT_DETECTED,
                Severity.HIGH,
                details=f"High bot score: {score} ({', '.join(reasons)})",
                endpoint=endpoint,
                user_id=user_id,
                user_agent=signals.user_agent,
            )
            return AccessDecision(
                outcome=AccessOutcome.CHALLENGE_REQUIRED,
                bot_score=score,
                suspicious=True,
                reasons=reasons,
            )

        if score >= self.flag_threshold:
            self.events.record(
                address,
                SecurityEventKind.SUSPICIOUS_BEHAVIOR,
                Severity.MEDIUM,
                details=f"Moderate bot score: {score}",
                endpoint=endpoint,
                user_id=user_id,
                user_agent=signals.user_agent,
            )
            return AccessDecision(
                outcome=AccessOutcome.FLAG, bot_score=score, suspicious=True, reasons=reasons
            )

        return AccessDecision(outcome=AccessOutcome.ALLOW, bot_score=score, reasons=reasons)
