"""
Tests for the CAPTCHA challenge manager.
"""

import asyncio
import re
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.captcha_challenge import CaptchaChallenge
from models.security_event import SecurityEvent
from repositories.reputation_repository import ReputationRepository
from services.challenge_service import ChallengeService, generate_question, normalize_solution

ADDRESS = "203.0.113.20"
UA = "Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0"


async def stored_answer(db: AsyncSession, challenge_id: str) -> str:
    result = await db.execute(
        select(CaptchaChallenge.solution).where(CaptchaChallenge.challenge_id == challenge_id)
    )
    return result.scalar_one()


@pytest.mark.unit
class TestQuestionGeneration:
    def test_question_shape_and_answer(self) -> None:
        for _ in range(200):
            question, answer = generate_question()
            match = re.fullmatch(r"(\d+) ([+-]) (\d+)", question)
            assert match is not None
            a, op, b = int(match.group(1)), match.group(2), int(match.group(3))
            assert 1 <= a <= 20 and 1 <= b <= 20
            assert answer == (a + b if op == "+" else a - b)


@pytest.mark.unit
class TestNormalizeSolution:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (12, "12"),
            (-3, "-3"),
            (0, "0"),
            (12.0, "12"),
            ("12", "12"),
            (" 12 ", "12"),
            ("007", "7"),
            ("-05", "-5"),
            ("+4", "4"),
        ],
    )
    def test_accepted(self, value, expected: str) -> None:
        assert normalize_solution(value) == expected

    @pytest.mark.parametrize(
        "value", [None, "", "abc", "1.5", 1.5, float("nan"), float("inf"), True, "1 2"]
    )
    def test_rejected(self, value) -> None:
        assert normalize_solution(value) is None


@pytest.mark.unit
class TestChallengeService:
    """Test challenge issue and verification."""

    async def test_create_stores_challenge(self, db: AsyncSession, events, clock) -> None:
        issued = await ChallengeService(db, events, clock).create(ADDRESS)

        challenge = (
            await db.execute(
                select(CaptchaChallenge).where(CaptchaChallenge.challenge_id == issued.challenge_id)
            )
        ).scalar_one()
        assert challenge.ip_address == ADDRESS
        assert challenge.solved is False
        assert len(issued.challenge_id) == 36
        # The answer is never part of what the client sees
        assert "=" not in issued.question

    async def test_correct_answer_verifies_once(self, db: AsyncSession, events, clock) -> None:
        service = ChallengeService(db, events, clock)
        issued = await service.create(ADDRESS)
        answer = await stored_answer(db, issued.challenge_id)

        assert await service.verify(issued.challenge_id, answer) is True
        assert await service.verify(issued.challenge_id, answer) is False

    async def test_answer_forms_are_normalized(self, db: AsyncSession, events, clock) -> None:
        service = ChallengeService(db, events, clock)
        with patch("services.challenge_service.generate_question", return_value=("3 + 4", 7)):
            issued = await service.create(ADDRESS)

        assert await service.verify(issued.challenge_id, " 007 ") is True

    async def test_zero_is_a_valid_answer(self, db: AsyncSession, events, clock) -> None:
        service = ChallengeService(db, events, clock)
        with patch("services.challenge_service.generate_question", return_value=("5 - 5", 0)):
            issued = await service.create(ADDRESS)

        assert await service.verify(issued.challenge_id, 0) is True

    async def test_wrong_answer_does_not_consume(self, db: AsyncSession, events, clock) -> None:
        service = ChallengeService(db, events, clock)
        with patch("services.challenge_service.generate_question", return_value=("2 + 2", 4)):
            issued = await service.create(ADDRESS)

        assert await service.verify(issued.challenge_id, 5) is False
        assert await service.verify(issued.challenge_id, 4) is True

    async def test_expired_challenge_fails(self, db: AsyncSession, events, clock) -> None:
        service = ChallengeService(db, events, clock)
        issued = await service.create(ADDRESS)
        answer = await stored_answer(db, issued.challenge_id)

        clock.advance(seconds=300)
        assert await service.verify(issued.challenge_id, answer) is False

    async def test_just_before_expiry_succeeds(self, db: AsyncSession, events, clock) -> None:
        service = ChallengeService(db, events, clock)
        issued = await service.create(ADDRESS)
        answer = await stored_answer(db, issued.challenge_id)

        clock.advance(seconds=299)
        assert await service.verify(issued.challenge_id, answer) is True

    async def test_unknown_challenge_fails(self, db: AsyncSession, events) -> None:
        service = ChallengeService(db, events)
        assert await service.verify("00000000-0000-0000-0000-000000000000", 3) is False

    async def test_unparseable_answer_skips_database(self, db: AsyncSession, events) -> None:
        service = ChallengeService(db, events)
        with patch.object(service.challenges, "mark_solved") as mark_solved:
            assert await service.verify("some-id", "twelve") is False
        mark_solved.assert_not_called()

    async def test_bound_to_issuing_address(self, db: AsyncSession, events, clock) -> None:
        service = ChallengeService(db, events, clock)
        issued = await service.create(ADDRESS)
        answer = await stored_answer(db, issued.challenge_id)

        assert await service.verify(issued.challenge_id, answer, address="198.51.100.1") is False
        assert await service.verify(issued.challenge_id, answer, address=ADDRESS) is True

    async def test_concurrent_verification_has_one_winner(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        events,
        clock,
    ) -> None:
        async with session_maker() as session:
            issued = await ChallengeService(session, events, clock).create(ADDRESS)
            answer = await stored_answer(session, issued.challenge_id)

        async def attempt() -> bool:
            async with session_maker() as session:
                return await ChallengeService(session, events, clock).verify(
                    issued.challenge_id, answer
                )

        results = await asyncio.gather(*(attempt() for _ in range(6)))
        assert results.count(True) == 1

    async def test_purge_expired(self, db: AsyncSession, events, clock) -> None:
        service = ChallengeService(db, events, clock)
        old = await service.create(ADDRESS)
        clock.advance(seconds=200)
        fresh = await service.create(ADDRESS)
        clock.advance(seconds=150)

        assert await service.purge_expired() == 1
        assert await service.challenges.get(old.challenge_id) is None
        assert await service.challenges.get(fresh.challenge_id) is not None


@pytest.mark.unit
class TestCompleteChallenge:
    """Test verification with amnesty and audit events."""

    async def test_success_applies_amnesty_and_records_event(
        self, db: AsyncSession, events, clock
    ) -> None:
        reputation = ReputationRepository(db, clock)
        await reputation.observe(ADDRESS, UA, 85)
        await db.commit()

        service = ChallengeService(db, events, clock)
        issued = await service.create(ADDRESS)
        answer = await stored_answer(db, issued.challenge_id)

        assert await service.complete(issued.challenge_id, answer, ADDRESS) is True
        assert (await reputation.get(ADDRESS, UA)).bot_score == 55

        await events.drain()
        kinds = (await db.execute(select(SecurityEvent.event_type))).scalars().all()
        assert kinds == ["captcha_passed"]

    async def test_failure_records_event_without_amnesty(
        self, db: AsyncSession, events, clock
    ) -> None:
        reputation = ReputationRepository(db, clock)
        await reputation.observe(ADDRESS, UA, 85)
        await db.commit()

        service = ChallengeService(db, events, clock)
        issued = await service.create(ADDRESS)

        assert await service.complete(issued.challenge_id, "not-a-number", ADDRESS) is False
        assert (await reputation.get(ADDRESS, UA)).bot_score == 85

        await events.drain()
        event = (await db.execute(select(SecurityEvent))).scalar_one()
        assert event.event_type == "captcha_failed"
        assert event.severity == "low"
