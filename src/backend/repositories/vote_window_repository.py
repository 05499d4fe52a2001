"""
Vote window repository.

One row per (resource, voter, UTC day). The unique key does the enforcing:
an insert that conflicts is a repeat vote.
"""

from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from db.dialect import dialect_insert
from models.vote_window import VoteTally, VoteWindow


class VoteWindowRepository:
    """Repository for daily vote windows and the tallies they gate."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    def today(self) -> date:
        return self.clock().date()

    async def insert_if_absent(self, resource_id: str, voter_hash: str) -> bool:
        """Insert today's window. False when it already existed. The caller commits."""
        now = self.clock()
        stmt = (
            dialect_insert(self.db, VoteWindow.__table__)
            .values(
                resource_id=resource_id,
                voter_hash=voter_hash,
                voted_on=now.date(),
                created_at=now,
            )
            .on_conflict_do_nothing(
                index_elements=["resource_id", "voter_hash", "voted_on"]
            )
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def exists(self, resource_id: str, voter_hash: str) -> bool:
        result = await self.db.execute(
            select(VoteWindow.id).where(
                VoteWindow.resource_id == resource_id,
                VoteWindow.voter_hash == voter_hash,
                VoteWindow.voted_on == self.today(),
            )
        )
        return result.scalar_one_or_none() is not None

    async def increment_tally(self, resource_id: str) -> int:
        """Add one vote to the resource tally and return the new total."""
        insert = dialect_insert(self.db, VoteTally)
        stmt = insert.values(resource_id=resource_id, votes=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[VoteTally.resource_id],
            set_={"votes": VoteTally.votes + 1},
        ).returning(VoteTally.votes)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def get_tally(self, resource_id: str) -> int:
        result = await self.db.execute(
            select(VoteTally.votes).where(VoteTally.resource_id == resource_id)
        )
        return result.scalar_one_or_none() or 0
