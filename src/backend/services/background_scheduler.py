"""
Background Scheduler Service

Manages scheduled background tasks using APScheduler:
- Expired CAPTCHA challenge cleanup (every CAPTCHA_CLEANUP_INTERVAL_MINUTES)

This runs in-process with the FastAPI application. Challenge expiry is always
checked in SQL, so the cleanup only keeps the table small.
"""

from datetime import timezone

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from db.session import async_session_maker
from services.security_events import get_security_event_sink

logger = structlog.get_logger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def captcha_cleanup_job() -> int:
    """Delete expired CAPTCHA challenges. Returns the number removed."""
    from services.challenge_service import ChallengeService

    try:
        async with async_session_maker() as db:
            service = ChallengeService(db, get_security_event_sink())
            return await service.purge_expired()
    except Exception:
        logger.exception("captcha_cleanup_failed")
        return 0


def get_scheduler() -> AsyncIOScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone=timezone.utc)
    return _scheduler


async def start_scheduler() -> None:
    """Start the background scheduler with all jobs."""
    if not settings.CAPTCHA_CLEANUP_ENABLED:
        logger.info("scheduler_disabled")
        return

    scheduler = get_scheduler()
    if scheduler.running:
        logger.info("scheduler_already_running")
        return

    scheduler.add_job(
        captcha_cleanup_job,
        trigger=IntervalTrigger(minutes=settings.CAPTCHA_CLEANUP_INTERVAL_MINUTES),
        id="captcha_cleanup",
        name="Expired CAPTCHA cleanup",
        replace_existing=True,
        max_instances=1,
    )
    scheduler.start()
    logger.info(
        "scheduler_started",
        captcha_cleanup_minutes=settings.CAPTCHA_CLEANUP_INTERVAL_MINUTES,
    )


async def stop_scheduler() -> None:
    """Stop the background scheduler gracefully."""
    global _scheduler

    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")

    _scheduler = None
