"""
CAPTCHA challenge repository.

Verification is a compare-and-set: the row flips to solved only when it is
still unsolved, unexpired and the answer matches, all in one UPDATE.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from models.captcha_challenge import CaptchaChallenge


class ChallengeRepository:
    """Repository for CAPTCHA challenges."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def create(
        self,
        challenge_id: str,
        address: str,
        solution: str,
        expires_at: datetime,
    ) -> CaptchaChallenge:
        challenge = CaptchaChallenge(
            challenge_id=challenge_id,
            ip_address=address,
            solution=solution,
            solved=False,
            created_at=self.clock(),
            expires_at=expires_at,
        )
        self.db.add(challenge)
        await self.db.flush()
        return challenge

    async def get(self, challenge_id: str) -> Optional[CaptchaChallenge]:
        result = await self.db.execute(
            select(CaptchaChallenge)
            .where(CaptchaChallenge.challenge_id == challenge_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_solved(
        self,
        challenge_id: str,
        solution: str,
        address: Optional[str] = None,
    ) -> bool:
        """
        Flip an open challenge to solved if ``solution`` matches.

        Returns True for exactly one caller per challenge. The caller commits.
        """
        conditions = [
            CaptchaChallenge.challenge_id == challenge_id,
            CaptchaChallenge.solved.is_(False),
            CaptchaChallenge.expires_at > self.clock(),
            CaptchaChallenge.solution == solution,
        ]
        if address is not None:
            conditions.append(CaptchaChallenge.ip_address == address)

        result = await self.db.execute(
            update(CaptchaChallenge)
            .where(*conditions)
            .values(solved=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete_expired(self) -> int:
        """Delete challenges whose expiry has passed, solved or not."""
        result = await self.db.execute(
            delete(CaptchaChallenge)
            .where(CaptchaChallenge.expires_at <= self.clock())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
