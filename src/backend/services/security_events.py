"""
Security event sink.

Recording an event never blocks or fails the request that triggered it: the
write is scheduled as a background task on its own session, and a failed
write is logged and dropped. Every event is also emitted as a log line so it
survives even when the database write does not.
"""

import asyncio
from enum import Enum
from typing import Callable, Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, utcnow
from db.session import async_session_maker
from models.security_event import SecurityEventKind, Severity
from repositories.security_event_repository import SecurityEventRepository

logger = structlog.get_logger(__name__)

_LOUD_SEVERITIES = (Severity.HIGH.value, Severity.CRITICAL.value)


def _value(item: Union[str, Enum]) -> str:
    return item.value if isinstance(item, Enum) else str(item)


class SecurityEventSink:
    """Fire-and-forget writer for security events."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory or async_session_maker
        self.clock = clock
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(
        self,
        address: str,
        kind: Union[SecurityEventKind, str],
        severity: Union[Severity, str],
        details: Optional[str] = None,
        endpoint: Optional[str] = None,
        user_id: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """Log the event and schedule its database write. Returns immediately."""
        event = {
            "address": address,
            "kind": _value(kind),
            "severity": _value(severity),
            "details": details,
            "endpoint": endpoint,
            "user_id": user_id,
            "user_agent": user_agent,
        }

        log = logger.warning if event["severity"] in _LOUD_SEVERITIES else logger.info
        log(
            "security_event",
            ip=address,
            kind=event["kind"],
            severity=event["severity"],
            endpoint=endpoint,
            details=details,
        )

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("security_event_not_persisted", reason="no_running_loop", kind=event["kind"])
            return

        task = loop.create_task(self._write(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(self, event: dict) -> None:
        try:
            async with self._session_factory() as db:
                await SecurityEventRepository(db, self.clock).add(**event)
                await db.commit()
        except Exception:
            logger.exception("security_event_write_failed", kind=event["kind"], ip=event["address"])

    async def drain(self) -> None:
        """Wait until every scheduled write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# Singleton instance
_sink: Optional[SecurityEventSink] = None


def get_security_event_sink() -> SecurityEventSink:
    """Get the process-wide sink (FastAPI dependency)."""
    global _sink
    if _sink is None:
        _sink = SecurityEventSink()
    return _sink
