"""
Vote window models.

``VoteWindow`` is the uniqueness constraint behind "one vote per device per
resource per day"; ``VoteTally`` is the counter the vote endpoint increments
in the same transaction.
"""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class VoteWindow(Base):
    """Existence of a row for today blocks a repeat vote."""

    __tablename__ = "vote_windows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    voter_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    voted_on: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("resource_id", "voter_hash", "voted_on", name="uq_vote_windows_key"),
    )


class VoteTally(Base):
    """Accepted votes per resource."""

    __tablename__ = "vote_tallies"

    resource_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
