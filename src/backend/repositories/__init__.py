"""Repository modules for database access."""

from repositories.blacklist_repository import BlacklistRepository
from repositories.challenge_repository import ChallengeRepository
from repositories.rate_limit_repository import RateLimitRepository
from repositories.reputation_repository import ReputationRepository
from repositories.security_event_repository import SecurityEventRepository
from repositories.vote_window_repository import VoteWindowRepository

__all__ = [
    "BlacklistRepository",
    "ChallengeRepository",
    "RateLimitRepository",
    "ReputationRepository",
    "SecurityEventRepository",
    "VoteWindowRepository",
]
