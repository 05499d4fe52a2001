"""
Admin security console endpoints.

These endpoints require the admin API key (``X-Admin-Key``) and are used for:
- Inspecting bot scores of an address
- Blacklisting addresses
- Browsing security events and reports
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_request_signals, require_admin
from core.clock import as_utc
from db.session import get_db
from repositories.reputation_repository import ReputationRepository
from repositories.security_event_repository import SecurityEventRepository
from schemas.security import (
    AddressReport,
    BlacklistRequest,
    BlacklistResponse,
    BotScoreLookup,
    RequestSignals,
    ScoreProbe,
    SecurityEventOut,
    SecurityOverview,
)
from services.blacklist_guard import BlacklistGuard
from services.bot_scorer import bot_scorer
from services.security_events import SecurityEventSink, get_security_event_sink
from services.security_report import SecurityReportService, event_out, score_out

router = APIRouter()


@router.get("/bot-score", response_model=BotScoreLookup)
async def get_bot_score(
    _admin: Annotated[str, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    events: Annotated[SecurityEventSink, Depends(get_security_event_sink)],
    signals: Annotated[RequestSignals, Depends(get_request_signals)],
    ip: Annotated[Optional[str], Query(min_length=1, max_length=64)] = None,
) -> BotScoreLookup:
    """
    Stored reputation records for an address.

    ``probe`` shows how the calling request itself scores, which helps when
    checking what a given client setup looks like to the scorer. Without
    ``ip`` the caller's own address is looked up.
    """
    ip = ip or signals.address
    records = await ReputationRepository(db).list_for_address(ip)
    blocked = await BlacklistGuard(db, events).is_blocked(ip)
    return BotScoreLookup(
        ip=ip,
        blocked=blocked,
        records=[score_out(record) for record in records],
        probe=ScoreProbe(bot_score=bot_scorer.score(signals), rules=bot_scorer.explain(signals)),
    )


@router.post("/blacklist", response_model=BlacklistResponse)
async def blacklist_ip(
    body: BlacklistRequest,
    admin: Annotated[str, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    events: Annotated[SecurityEventSink, Depends(get_security_event_sink)],
) -> BlacklistResponse:
    """Ban an address for ``duration`` minutes, or permanently."""
    entry = await BlacklistGuard(db, events).block(
        body.ip,
        body.reason,
        duration_minutes=body.duration,
        created_by=admin,
    )
    return BlacklistResponse(
        success=True,
        ip=entry.ip_address,
        blocked_until=as_utc(entry.blocked_until) if entry.blocked_until else None,
    )


@router.get("/events", response_model=list[SecurityEventOut])
async def list_security_events(
    _admin: Annotated[str, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[SecurityEventOut]:
    """Most recent security events."""
    return [event_out(event) for event in await SecurityEventRepository(db).recent(limit)]


@router.get("/report", response_model=SecurityOverview)
async def security_report(
    _admin: Annotated[str, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SecurityOverview:
    return await SecurityReportService(db).overview()


@router.get("/report/{ip}", response_model=AddressReport)
async def security_report_for_ip(
    ip: str,
    _admin: Annotated[str, Depends(require_admin)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> AddressReport:
    return await SecurityReportService(db).events_for_address(ip, limit)
