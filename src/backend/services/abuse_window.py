"""
Abuse-window guard.

Enforces one action per (resource, device fingerprint) per UTC day with a
unique-key insert. ``hold()`` keeps the window insert and the business action
in a single transaction, so a failed action never uses up the window.

Unlike the access pipeline this guard fails closed: if the store cannot
confirm uniqueness, the action is refused.
"""

from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from core.exceptions import StoreUnavailableError, VoteWindowExceededError
from repositories.vote_window_repository import VoteWindowRepository

logger = structlog.get_logger(__name__)


class WindowDecision(str, Enum):
    GRANTED = "granted"
    DUPLICATE = "duplicate"
    UNAVAILABLE = "unavailable"


class AbuseWindowGuard:
    """Daily uniqueness windows keyed by device fingerprint."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.windows = VoteWindowRepository(db, clock)

    async def acquire(self, resource_id: str, fingerprint: str) -> WindowDecision:
        """
        Try to claim today's window without committing.

        On ``unavailable`` the transaction has been rolled back.
        """
        try:
            inserted = await self.windows.insert_if_absent(resource_id, fingerprint)
        except SQLAlchemyError as e:
            logger.error("vote_window_store_failed", resource_id=resource_id, error=str(e))
            await self.db.rollback()
            return WindowDecision.UNAVAILABLE

        if not inserted:
            logger.info("vote_window_duplicate", resource_id=resource_id)
            return WindowDecision.DUPLICATE
        return WindowDecision.GRANTED

    async def try_record(self, resource_id: str, fingerprint: str) -> bool:
        """Claim and commit today's window. False for duplicates and store errors."""
        decision = await self.acquire(resource_id, fingerprint)
        if decision is not WindowDecision.GRANTED:
            return False
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error("vote_window_commit_failed", resource_id=resource_id, error=str(e))
            await self.db.rollback()
            return False
        return True

    @asynccontextmanager
    async def hold(self, resource_id: str, fingerprint: str) -> AsyncIterator[AsyncSession]:
        """
        Claim today's window around a business action.

        Usage::

            async with guard.hold(resource_id, fingerprint) as db:
                await do_the_thing(db)

        Raises ``VoteWindowExceededError`` for a repeat and
        ``StoreUnavailableError`` when the store fails. The window and the
        action commit together, or neither does.
        """
        decision = await self.acquire(resource_id, fingerprint)
        if decision is WindowDecision.UNAVAILABLE:
            raise StoreUnavailableError()
        if decision is WindowDecision.DUPLICATE:
            await self.db.rollback()
            raise VoteWindowExceededError()

        try:
            yield self.db
        except BaseException:
            await self.db.rollback()
            raise

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error("vote_window_commit_failed", resource_id=resource_id, error=str(e))
            await self.db.rollback()
            raise StoreUnavailableError() from e
