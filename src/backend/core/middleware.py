"""
Response hardening middleware.

Adds security headers to every response and marks the security endpoints
(CAPTCHA issue/verify, admin console) as non-cacheable so challenge questions
and reputation data never land in shared caches.
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses.

    - X-Content-Type-Options: Prevents MIME type sniffing
    - X-Frame-Options / frame-ancestors: API responses are never framed
    - Referrer-Policy: Controls referrer information
    - Cache-Control: Security responses are never cached
    """

    NO_STORE_PREFIXES = ("/api/v1/security", "/api/v1/admin")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if request.url.path.startswith(self.NO_STORE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"

        return response
