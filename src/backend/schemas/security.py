"""
Security pipeline schemas.

Request signals fed to the heuristic scorer, the access decision produced by
the pipeline, and the request/response bodies of the CAPTCHA, vote and admin
security endpoints. JSON bodies use camelCase aliases.
"""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API bodies serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Pipeline types
# =============================================================================


class RequestSignals(BaseModel):
    """
    The request attributes the heuristic scorer looks at.

    Header values are ``None`` when the header is absent so that absent and
    empty can be told apart; the scorer treats both the same way.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    method: str = "GET"
    path: str = "/"
    user_agent: Optional[str] = None
    accept: Optional[str] = None
    accept_language: Optional[str] = None
    accept_encoding: Optional[str] = None
    connection: Optional[str] = None
    referer_present: bool = False
    xhr_marker_present: bool = False

    @classmethod
    def from_headers(
        cls,
        address: str,
        method: str,
        path: str,
        headers: Mapping[str, str],
    ) -> "RequestSignals":
        """Build signals from a plain mapping or Starlette ``Headers``."""
        lowered = {key.lower(): value for key, value in headers.items()}
        return cls(
            address=address,
            method=method.upper(),
            path=path,
            user_agent=lowered.get("user-agent"),
            accept=lowered.get("accept"),
            accept_language=lowered.get("accept-language"),
            accept_encoding=lowered.get("accept-encoding"),
            connection=lowered.get("connection"),
            referer_present="referer" in lowered,
            xhr_marker_present="x-requested-with" in lowered,
        )


class AccessOutcome(str, Enum):
    """What the pipeline decided for a request."""

    ALLOW = "allow"
    FLAG = "flag"
    CHALLENGE_REQUIRED = "challenge_required"
    REJECT = "reject"


class AccessDecision(BaseModel):
    """Result of running the access pipeline on one request."""

    outcome: AccessOutcome
    bot_score: int = 0
    suspicious: bool = False
    reasons: list[str] = Field(default_factory=list)

    @property
    def allowed(self) -> bool:
        """True when the handler may proceed (possibly flagged)."""
        return self.outcome in (AccessOutcome.ALLOW, AccessOutcome.FLAG)


# =============================================================================
# CAPTCHA
# =============================================================================


class IssuedChallenge(CamelModel):
    """A freshly issued challenge. The answer never leaves the server."""

    challenge_id: str
    question: str


class CaptchaVerifyRequest(CamelModel):
    """Body of ``POST /security/captcha/verify``. Both fields are checked by the endpoint."""

    challenge_id: Optional[str] = None
    # Strict so a JSON boolean is not coerced to 0 or 1
    solution: Union[StrictInt, StrictFloat, StrictStr, StrictBool, None] = None


class CaptchaVerifyResponse(BaseModel):
    """Successful verification."""

    valid: bool
    message: str


# =============================================================================
# Votes
# =============================================================================


class VoteResponse(CamelModel):
    """Result of an accepted vote."""

    success: bool
    resource_id: str
    votes: int
    flagged: bool = False


# =============================================================================
# Admin security console
# =============================================================================


class BlacklistRequest(BaseModel):
    """Ban an address. ``duration`` is in minutes; omit it for a permanent ban."""

    ip: str = Field(..., min_length=1, max_length=64)
    reason: str = Field(..., min_length=1, max_length=500)
    duration: Optional[int] = Field(None, gt=0)


class BlacklistResponse(CamelModel):
    success: bool
    ip: str
    blocked_until: Optional[datetime] = None


class BotScoreRecord(CamelModel):
    """One stored reputation record."""

    ip: str
    user_agent: str
    device_fingerprint: Optional[str] = None
    bot_score: int
    request_count: int
    suspicious_patterns: int
    last_updated: datetime


class ScoreProbe(CamelModel):
    """How the calling request itself scores, rule by rule."""

    bot_score: int
    rules: list[str]


class BotScoreLookup(CamelModel):
    """Response of ``GET /admin/security/bot-score``."""

    ip: str
    blocked: bool
    records: list[BotScoreRecord]
    probe: ScoreProbe


class SecurityEventOut(CamelModel):
    id: int
    ip: str
    user_id: Optional[str] = None
    event_type: str
    severity: str
    details: Optional[str] = None
    user_agent: Optional[str] = None
    endpoint: Optional[str] = None
    created_at: datetime


class ReportTotals(CamelModel):
    total_events: int = 0
    high_severity: int = 0
    critical_severity: int = 0
    bot_detections: int = 0
    rate_limits: int = 0
    last_24h: int = 0
    latest_event: Optional[datetime] = None


class AddressActivity(CamelModel):
    ip: str
    event_count: int
    event_types: list[str]


class BlacklistStatus(CamelModel):
    ip: str
    reason: str
    blocked_at: datetime
    blocked_until: Optional[datetime] = None
    created_by: Optional[str] = None
    status: str


class RiskEntry(CamelModel):
    ip: str
    user_agent: str
    bot_score: int
    request_count: int
    suspicious_patterns: int
    risk: str


class SecurityOverview(CamelModel):
    """Response of ``GET /admin/security/report``."""

    totals: ReportTotals
    top_addresses: list[AddressActivity]
    blacklist: list[BlacklistStatus]
    top_scores: list[RiskEntry]
    recent_events: list[SecurityEventOut]


class AddressReport(CamelModel):
    """Response of ``GET /admin/security/report/{ip}``."""

    ip: str
    blocked: bool
    events: list[SecurityEventOut]
    scores: list[BotScoreRecord]
