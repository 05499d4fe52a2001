"""
Security event model.

Append-only audit trail of escalations, bans and challenge outcomes. This
service only writes it; the admin console reads it.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class SecurityEventKind(str, Enum):
    """What happened."""

    BOT_DETECTED = "bot_detected"
    RATE_LIMITED = "rate_limit"
    SUSPICIOUS_BEHAVIOR = "suspicious_behavior"
    BLOCKED_REQUEST = "blocked_request"
    IP_BLACKLISTED = "ip_blacklisted"
    CAPTCHA_PASSED = "captcha_passed"
    CAPTCHA_FAILED = "captcha_failed"


class Severity(str, Enum):
    """How bad it is."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEvent(Base):
    """One audit record."""

    __tablename__ = "security_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default=Severity.LOW.value)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    endpoint: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_security_events_ip", "ip_address"),
        Index("ix_security_events_created", "created_at"),
        Index("ix_security_events_type", "event_type"),
    )
