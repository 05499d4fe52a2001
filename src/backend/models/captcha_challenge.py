"""
CAPTCHA challenge model.

A challenge is bound to the address that requested it, can be solved at most
once, and is dead after ``expires_at`` whether solved or not.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class CaptchaChallenge(Base):
    """Short-lived arithmetic challenge."""

    __tablename__ = "captcha_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    challenge_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    # Normalized integer text, e.g. "-3"
    solution: Mapped[str] = mapped_column(String(16), nullable=False)
    solved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_captcha_challenges_expires", "expires_at"),)
