"""
Policy rejections raised by the access-control layer.

These are expected, user-facing outcomes (blacklisted, challenge required,
rate limited, daily vote already used). They carry a machine-readable code and
a non-500 status and are rendered by a single exception handler in main.py.
"""

from typing import Any

from fastapi import status


class PolicyRejection(Exception):
    """Base class for expected access-control rejections."""

    status_code: int = status.HTTP_403_FORBIDDEN
    code: str = "ACCESS_DENIED"
    message: str = "Access denied"

    def __init__(self, message: str | None = None, **extra: Any):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.extra = extra

    def to_body(self) -> dict[str, Any]:
        """JSON body returned to the client."""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        body.update({k: v for k, v in self.extra.items() if v is not None})
        return body


class IpBlacklistedError(PolicyRejection):
    status_code = status.HTTP_403_FORBIDDEN
    code = "IP_BLACKLISTED"
    message = "Access denied"


class CaptchaRequiredError(PolicyRejection):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "CAPTCHA_REQUIRED"
    message = "Suspicious activity detected. Please complete CAPTCHA verification."

    def __init__(self, bot_score: int):
        super().__init__(botScore=bot_score)
        self.bot_score = bot_score


class RateLimitedError(PolicyRejection):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "RATE_LIMITED"
    message = "Too many attempts, please slow down."

    def __init__(self, retry_after: int):
        super().__init__(retryAfter=retry_after)
        self.retry_after = retry_after


class VoteWindowExceededError(PolicyRejection):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "VOTE_LIMIT_REACHED"
    message = "You can only vote once per day for this resource from this device."


class StoreUnavailableError(PolicyRejection):
    """The store could not confirm uniqueness, so the action is refused."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"
    message = "Service temporarily unavailable. Please try again later."
