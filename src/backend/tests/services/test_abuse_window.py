"""
Tests for the once-per-day abuse window.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.exceptions import StoreUnavailableError, VoteWindowExceededError
from repositories.vote_window_repository import VoteWindowRepository
from services.abuse_window import AbuseWindowGuard, WindowDecision

RESOURCE = "listing-42"
FINGERPRINT = "a" * 64


class BusinessActionFailed(Exception):
    pass


@pytest.mark.unit
class TestAbuseWindowGuard:
    """Test window acquisition."""

    async def test_first_vote_granted_second_duplicate(self, db: AsyncSession, clock) -> None:
        guard = AbuseWindowGuard(db, clock)

        assert await guard.try_record(RESOURCE, FINGERPRINT) is True
        assert await guard.try_record(RESOURCE, FINGERPRINT) is False
        assert await guard.acquire(RESOURCE, FINGERPRINT) is WindowDecision.DUPLICATE

    async def test_other_resource_and_device_independent(self, db: AsyncSession, clock) -> None:
        guard = AbuseWindowGuard(db, clock)

        assert await guard.try_record(RESOURCE, FINGERPRINT) is True
        assert await guard.try_record("listing-43", FINGERPRINT) is True
        assert await guard.try_record(RESOURCE, "b" * 64) is True

    async def test_window_reopens_next_utc_day(self, db: AsyncSession, clock) -> None:
        guard = AbuseWindowGuard(db, clock)
        assert await guard.try_record(RESOURCE, FINGERPRINT) is True

        clock.advance(days=1)
        assert await guard.try_record(RESOURCE, FINGERPRINT) is True

    async def test_concurrent_attempts_grant_exactly_one(
        self, session_maker: async_sessionmaker[AsyncSession], clock
    ) -> None:
        async def attempt() -> bool:
            async with session_maker() as session:
                return await AbuseWindowGuard(session, clock).try_record(RESOURCE, FINGERPRINT)

        results = await asyncio.gather(*(attempt() for _ in range(8)))
        assert results.count(True) == 1

    async def test_store_failure_is_unavailable(self, db: AsyncSession, clock) -> None:
        guard = AbuseWindowGuard(db, clock)
        error = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(guard.windows, "insert_if_absent", AsyncMock(side_effect=error)):
            assert await guard.acquire(RESOURCE, FINGERPRINT) is WindowDecision.UNAVAILABLE
            assert await guard.try_record(RESOURCE, FINGERPRINT) is False


@pytest.mark.unit
class TestHold:
    """Test the window held around a business action."""

    async def test_action_and_window_commit_together(self, db: AsyncSession, clock) -> None:
        guard = AbuseWindowGuard(db, clock)
        async with guard.hold(RESOURCE, FINGERPRINT) as session:
            votes = await VoteWindowRepository(session, clock).increment_tally(RESOURCE)

        assert votes == 1
        repo = VoteWindowRepository(db, clock)
        assert await repo.exists(RESOURCE, FINGERPRINT) is True
        assert await repo.get_tally(RESOURCE) == 1

    async def test_failed_action_releases_window(self, db: AsyncSession, clock) -> None:
        guard = AbuseWindowGuard(db, clock)
        with pytest.raises(BusinessActionFailed):
            async with guard.hold(RESOURCE, FINGERPRINT) as session:
                await VoteWindowRepository(session, clock).increment_tally(RESOURCE)
                raise BusinessActionFailed()

        repo = VoteWindowRepository(db, clock)
        assert await repo.exists(RESOURCE, FINGERPRINT) is False
        assert await repo.get_tally(RESOURCE) == 0

        # The window is still available
        assert await guard.try_record(RESOURCE, FINGERPRINT) is True

    async def test_cancelled_action_releases_window(
        self, session_maker: async_sessionmaker[AsyncSession], clock
    ) -> None:
        started = asyncio.Event()

        async def slow_vote() -> None:
            async with session_maker() as session:
                async with AbuseWindowGuard(session, clock).hold(RESOURCE, FINGERPRINT):
                    started.set()
                    await asyncio.sleep(10)

        task = asyncio.create_task(slow_vote())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        async with session_maker() as session:
            assert await AbuseWindowGuard(session, clock).try_record(RESOURCE, FINGERPRINT) is True

    async def test_duplicate_raises(self, db: AsyncSession, clock) -> None:
        guard = AbuseWindowGuard(db, clock)
        assert await guard.try_record(RESOURCE, FINGERPRINT) is True

        with pytest.raises(VoteWindowExceededError):
            async with guard.hold(RESOURCE, FINGERPRINT):
                pytest.fail("action must not run for a duplicate")

    async def test_store_failure_fails_closed(self, db: AsyncSession, clock) -> None:
        guard = AbuseWindowGuard(db, clock)
        error = OperationalError("INSERT", {}, Exception("database is locked"))
        with patch.object(guard.windows, "insert_if_absent", AsyncMock(side_effect=error)):
            with pytest.raises(StoreUnavailableError):
                async with guard.hold(RESOURCE, FINGERPRINT):
                    pytest.fail("action must not run when the store is down")
