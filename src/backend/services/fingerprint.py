"""
Device fingerprint extraction.

A fingerprint is an HMAC-SHA256 over the network address, the user-agent,
the accept-language header and a hash of the device attributes the client
reports in the ``X-Device-Fingerprint`` header (screen resolution, timezone,
platform, language, ...). The salt keeps fingerprints unforgeable by clients
that can see their own headers.
"""

import hashlib
import hmac
import json
from collections.abc import Mapping
from typing import Any, Optional

import structlog

from core.config import settings

logger = structlog.get_logger(__name__)

DEVICE_HEADER = "x-device-fingerprint"


def _header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette Headers already are not.
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
        return ""
    return value


def parse_device_info(raw: Optional[str]) -> Optional[dict[str, Any]]:
    """Decode the device header. Anything other than a JSON object is treated as absent."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        logger.debug("device_fingerprint_malformed", length=len(raw))
        return None
    if not isinstance(data, dict):
        return None
    return data


def device_hash(device_info: Optional[Mapping[str, Any]]) -> str:
    """SHA-256 of the canonical (sorted-key) JSON of the device attributes."""
    if not device_info:
        return ""
    canonical = json.dumps(dict(device_info), sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def compute_fingerprint(
    address: str,
    headers: Mapping[str, str],
    device_info: Optional[Mapping[str, Any]] = None,
    salt: Optional[str] = None,
) -> str:
    """
    Compute the salted device fingerprint for a request.

    Args:
        address: Client network address
        headers: Request headers (plain mapping or Starlette ``Headers``)
        device_info: Already-decoded device attributes; read from the
            ``X-Device-Fingerprint`` header when omitted
        salt: HMAC key, defaults to the configured fingerprint salt

    Returns:
        64-character hex digest. Missing inputs participate as empty strings.
    """
    if device_info is None:
        device_info = parse_device_info(_header(headers, DEVICE_HEADER))

    material = "|".join(
        [
            address or "",
            _header(headers, "user-agent"),
            _header(headers, "accept-language"),
            device_hash(device_info),
        ]
    )
    key = (salt if salt is not None else settings.fingerprint_salt).encode()
    return hmac.new(key, material.encode(), hashlib.sha256).hexdigest()
