"""
Vote endpoint.

The reference mutating route guarded by the full security pipeline:
rate limit, then access decision, then the once-per-day abuse window, then
the tally increment in the same transaction as the window.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import enforce_access, get_client_ip, get_device_fingerprint
from core.config import settings
from db.session import get_db
from repositories.vote_window_repository import VoteWindowRepository
from schemas.security import AccessDecision, VoteResponse
from services.abuse_window import AbuseWindowGuard
from services.rate_limiter import RateLimiter, get_rate_limiter
from services.security_events import SecurityEventSink, get_security_event_sink

router = APIRouter()


async def enforce_vote_rate_limit(
    request: Request,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    events: Annotated[SecurityEventSink, Depends(get_security_event_sink)],
) -> int:
    """Allow VOTE_RATE_LIMIT_PER_MINUTE votes per address per minute."""
    return await limiter.enforce(
        "vote",
        get_client_ip(request),
        settings.VOTE_RATE_LIMIT_PER_MINUTE,
        events,
        endpoint=request.url.path,
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/{resource_id}", response_model=VoteResponse)
async def cast_vote(
    _remaining: Annotated[int, Depends(enforce_vote_rate_limit)],
    decision: Annotated[AccessDecision, Depends(enforce_access)],
    fingerprint: Annotated[str, Depends(get_device_fingerprint)],
    db: Annotated[AsyncSession, Depends(get_db)],
    resource_id: Annotated[str, Path(min_length=1, max_length=64)],
) -> VoteResponse:
    """
    Cast one vote for a resource.

    Each device may vote once per resource per UTC day. Flagged requests are
    counted but reported back with ``flagged: true``.
    """
    guard = AbuseWindowGuard(db)
    async with guard.hold(resource_id, fingerprint) as session:
        votes = await VoteWindowRepository(session).increment_tally(resource_id)

    return VoteResponse(
        success=True,
        resource_id=resource_id,
        votes=votes,
        flagged=decision.suspicious,
    )
