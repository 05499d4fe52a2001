"""
Rate limit counter model.

One row per ``scope:address`` key holding the hit count of its current fixed
window. Rows past ``expires_at`` are reset on the next hit and swept by
``RateLimitRepository.delete_expired``.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class RateLimitCounter(Base):
    """Hit counter for one rate limit key."""

    __tablename__ = "rate_limit_counters"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    hits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_rate_limit_counters_expires", "expires_at"),)
