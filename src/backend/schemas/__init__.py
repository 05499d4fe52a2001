"""Schemas module initialization."""

from schemas.security import (
    AccessDecision,
    AccessOutcome,
    CaptchaVerifyRequest,
    IssuedChallenge,
    RequestSignals,
    VoteResponse,
)

__all__ = [
    "AccessDecision",
    "AccessOutcome",
    "CaptchaVerifyRequest",
    "IssuedChallenge",
    "RequestSignals",
    "VoteResponse",
]
