"""
Shared dependencies for API endpoints.

Includes:
- Client address and request signal extraction
- The access decision pipeline for mutating routes
- Admin API key authentication for the security console
"""

import hmac
from typing import Annotated, Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import CaptchaRequiredError, IpBlacklistedError
from db.session import get_db
from schemas.security import AccessDecision, AccessOutcome, RequestSignals
from services.access_pipeline import AccessPipeline
from services.fingerprint import compute_fingerprint
from services.security_events import SecurityEventSink, get_security_event_sink

logger = structlog.get_logger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


# =============================================================================
# Request identity
# =============================================================================


def get_client_ip(request: Request) -> str:
    """
    Extract the client address.

    Proxy headers are only honoured when TRUST_PROXY_HEADERS is set, since
    any client can send them.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # Take first IP (original client)
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


def get_request_signals(request: Request) -> RequestSignals:
    """Collect the headers the bot scorer looks at."""
    return RequestSignals.from_headers(
        address=get_client_ip(request),
        method=request.method,
        path=request.url.path,
        headers=request.headers,
    )


def get_device_fingerprint(request: Request) -> str:
    """Salted fingerprint of the calling device."""
    return compute_fingerprint(get_client_ip(request), request.headers)


# =============================================================================
# Access pipeline
# =============================================================================


def get_access_pipeline(
    db: Annotated[AsyncSession, Depends(get_db)],
    events: Annotated[SecurityEventSink, Depends(get_security_event_sink)],
) -> AccessPipeline:
    return AccessPipeline(db, events)


async def enforce_access(
    request: Request,
    signals: Annotated[RequestSignals, Depends(get_request_signals)],
    fingerprint: Annotated[str, Depends(get_device_fingerprint)],
    pipeline: Annotated[AccessPipeline, Depends(get_access_pipeline)],
) -> AccessDecision:
    """
    Run the access pipeline for a mutating request.

    The decision is also stored on ``request.state.access_decision``.

    Raises:
        IpBlacklistedError: The address is banned.
        CaptchaRequiredError: The request looks automated.
    """
    if request.method.upper() in SAFE_METHODS:
        decision = AccessDecision(outcome=AccessOutcome.ALLOW)
    else:
        decision = await pipeline.evaluate(
            signals,
            endpoint=request.url.path,
            device_fingerprint=fingerprint,
        )
    request.state.access_decision = decision

    if decision.outcome is AccessOutcome.REJECT:
        raise IpBlacklistedError()
    if decision.outcome is AccessOutcome.CHALLENGE_REQUIRED:
        raise CaptchaRequiredError(decision.bot_score)
    return decision


# =============================================================================
# Admin
# =============================================================================


def require_admin(
    x_admin_key: Annotated[Optional[str], Header()] = None,
    x_admin_actor: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Dependency to require admin access.

    Returns the acting administrator's name (``X-Admin-Actor``, default
    ``admin-api``).
    """
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API is not configured",
        )
    if not x_admin_key or not hmac.compare_digest(
        x_admin_key.encode(), settings.ADMIN_API_KEY.encode()
    ):
        logger.warning("admin_auth_failed", key_present=bool(x_admin_key))
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return x_admin_actor or "admin-api"
