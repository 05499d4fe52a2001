"""
Bot score model.

Persistent reputation per (address, user-agent). Each observation replaces
the stored score with the latest one and bumps the monotonic counters.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class BotScore(Base):
    """
    Reputation record for one network identity.

    - bot_score: latest heuristic score (0-100), not an average
    - request_count: observations for this key
    - suspicious_patterns: observations scoring above the suspicious threshold
    """

    __tablename__ = "bot_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    # Empty string when the client sent no User-Agent so the unique key still applies
    user_agent: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    device_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True)

    bot_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    suspicious_patterns: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("ip_address", "user_agent", name="uq_bot_scores_ip_ua"),
        Index("ix_bot_scores_ip", "ip_address"),
        Index("ix_bot_scores_score", "bot_score"),
    )

    def __repr__(self) -> str:
        return f"<BotScore(ip={self.ip_address}, score={self.bot_score}, requests={self.request_count})>"
