"""
CAPTCHA challenge manager.

Issues small arithmetic questions, verifies answers exactly once, and gives
an address that solved one a reduction of its stored bot scores.
"""

import math
import re
import secrets
import uuid
from datetime import timedelta
from typing import Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from core.config import settings
from models.security_event import SecurityEventKind, Severity
from repositories.challenge_repository import ChallengeRepository
from repositories.reputation_repository import ReputationRepository
from schemas.security import IssuedChallenge
from services.security_events import SecurityEventSink

logger = structlog.get_logger(__name__)

OPERAND_MIN = 1
OPERAND_MAX = 20
OPERATORS = ("+", "-")

_INTEGER_TEXT = re.compile(r"^[+-]?\d{1,12}$")

Solution = Union[int, float, str, bool, None]


def normalize_solution(value: Solution) -> Optional[str]:
    """
    Normalize a submitted answer to canonical integer text.

    Accepts ints, integral floats and integer strings (surrounding whitespace
    and leading zeros ignored). Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return None
    if isinstance(value, str):
        text = value.strip()
        if _INTEGER_TEXT.match(text):
            return str(int(text))
    return None


def generate_question() -> tuple[str, int]:
    """Return a question like ``"7 - 12"`` and its answer."""
    a = OPERAND_MIN + secrets.randbelow(OPERAND_MAX - OPERAND_MIN + 1)
    b = OPERAND_MIN + secrets.randbelow(OPERAND_MAX - OPERAND_MIN + 1)
    operator = secrets.choice(OPERATORS)
    answer = a + b if operator == "+" else a - b
    return f"{a} {operator} {b}", answer


class ChallengeService:
    """Issue and verify CAPTCHA challenges."""

    def __init__(
        self,
        db: AsyncSession,
        events: SecurityEventSink,
        clock: Clock = utcnow,
        ttl_seconds: Optional[int] = None,
        amnesty_points: Optional[int] = None,
    ):
        self.db = db
        self.events = events
        self.clock = clock
        self.ttl = timedelta(
            seconds=ttl_seconds if ttl_seconds is not None else settings.CAPTCHA_TTL_SECONDS
        )
        self.amnesty_points = (
            amnesty_points if amnesty_points is not None else settings.CAPTCHA_AMNESTY_POINTS
        )
        self.challenges = ChallengeRepository(db, clock)
        self.reputation = ReputationRepository(db, clock)

    async def create(self, address: str) -> IssuedChallenge:
        """Issue a new challenge bound to ``address``."""
        question, answer = generate_question()
        challenge_id = str(uuid.uuid4())

        await self.challenges.create(
            challenge_id=challenge_id,
            address=address,
            solution=str(answer),
            expires_at=self.clock() + self.ttl,
        )
        await self.db.commit()

        logger.debug("captcha_issued", challenge_id=challenge_id, ip=address)
        return IssuedChallenge(challenge_id=challenge_id, question=question)

    async def _consume(
        self,
        challenge_id: Optional[str],
        solution: Solution,
        address: Optional[str],
    ) -> bool:
        answer = normalize_solution(solution)
        if answer is None or not isinstance(challenge_id, str) or not challenge_id:
            return False
        return await self.challenges.mark_solved(challenge_id, answer, address)

    async def verify(
        self,
        challenge_id: Optional[str],
        solution: Solution,
        address: Optional[str] = None,
    ) -> bool:
        """
        Check an answer and consume the challenge on success.

        Unknown, expired, already solved, wrong-address and wrong-answer
        challenges all return False. Only one concurrent caller can win.
        """
        solved = await self._consume(challenge_id, solution, address)
        if solved:
            await self.db.commit()
        return solved

    async def complete(
        self,
        challenge_id: Optional[str],
        solution: Solution,
        address: str,
        user_agent: Optional[str] = None,
        endpoint: Optional[str] = None,
    ) -> bool:
        """Verify, then reward the address with a score amnesty and record the outcome."""
        solved = await self._consume(challenge_id, solution, address)
        if solved:
            lowered = await self.reputation.apply_amnesty(address, self.amnesty_points)
            await self.db.commit()
            logger.info("captcha_passed", ip=address, records_lowered=lowered)
            self.events.record(
                address,
                SecurityEventKind.CAPTCHA_PASSED,
                Severity.LOW,
                details=f"Bot score reduced by {self.amnesty_points}",
                endpoint=endpoint,
                user_agent=user_agent,
            )
        else:
            self.events.record(
                address,
                SecurityEventKind.CAPTCHA_FAILED,
                Severity.LOW,
                details="Invalid, expired or already used challenge",
                endpoint=endpoint,
                user_agent=user_agent,
            )
        return solved

    async def purge_expired(self) -> int:
        """Delete expired challenges. Returns the number removed."""
        removed = await self.challenges.delete_expired()
        await self.db.commit()
        if removed:
            logger.info("captcha_challenges_purged", count=removed)
        return removed
