"""Database models module."""

from models.bot_score import BotScore
from models.captcha_challenge import CaptchaChallenge
from models.ip_blacklist import IpBlacklistEntry
from models.rate_limit import RateLimitCounter
from models.security_event import SecurityEvent, SecurityEventKind, Severity
from models.vote_window import VoteTally, VoteWindow

__all__ = [
    "BotScore",
    "CaptchaChallenge",
    "IpBlacklistEntry",
    "RateLimitCounter",
    "SecurityEvent",
    "SecurityEventKind",
    "Severity",
    "VoteTally",
    "VoteWindow",
]
