"""
CAPTCHA endpoints.

Clients that receive a ``CAPTCHA_REQUIRED`` rejection fetch a challenge here,
answer it, and retry. A correct answer lowers the bot scores stored for the
client's address.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_client_ip
from core.config import settings
from db.session import get_db
from schemas.security import CaptchaVerifyRequest, CaptchaVerifyResponse, IssuedChallenge
from services.challenge_service import ChallengeService
from services.rate_limiter import RateLimiter, get_rate_limiter
from services.security_events import SecurityEventSink, get_security_event_sink

router = APIRouter()


def get_challenge_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    events: Annotated[SecurityEventSink, Depends(get_security_event_sink)],
) -> ChallengeService:
    return ChallengeService(db, events)


def _invalid(error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"valid": False, "error": error},
    )


@router.get("/captcha", response_model=IssuedChallenge)
async def issue_captcha(
    request: Request,
    challenges: Annotated[ChallengeService, Depends(get_challenge_service)],
) -> IssuedChallenge:
    """Issue an arithmetic challenge bound to the caller's address."""
    return await challenges.create(get_client_ip(request))


@router.post(
    "/captcha/verify",
    response_model=CaptchaVerifyResponse,
    responses={400: {"description": "Missing fields or wrong, expired or used challenge"}},
)
async def verify_captcha(
    request: Request,
    challenges: Annotated[ChallengeService, Depends(get_challenge_service)],
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    events: Annotated[SecurityEventSink, Depends(get_security_event_sink)],
    payload: Optional[CaptchaVerifyRequest] = None,
):
    """
    Verify a challenge answer.

    ``0`` is a valid answer; only a missing or empty field is rejected up
    front. Wrong, expired, unknown and already-used challenges are
    indistinguishable to the caller.
    """
    if payload is None or not payload.challenge_id or payload.solution in (None, ""):
        return _invalid("Challenge ID and solution are required")

    address = get_client_ip(request)
    await limiter.enforce(
        "captcha_verify",
        address,
        settings.CAPTCHA_VERIFY_RATE_LIMIT_PER_MINUTE,
        events,
        endpoint=request.url.path,
        user_agent=request.headers.get("user-agent"),
    )

    valid = await challenges.complete(
        payload.challenge_id,
        payload.solution,
        address,
        user_agent=request.headers.get("user-agent"),
        endpoint=request.url.path,
    )
    if not valid:
        return _invalid("Invalid CAPTCHA solution")
    return CaptchaVerifyResponse(valid=True, message="CAPTCHA verified successfully")
