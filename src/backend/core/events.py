"""
Application lifecycle event handlers.

Manages startup and shutdown tasks for the database, the security event sink
and the background scheduler.
"""

from typing import Callable

import structlog
from fastapi import FastAPI

from core.config import settings
from db.session import close_db, init_db

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        logger.info("app_starting", app=settings.APP_NAME, env=settings.APP_ENV)

        await init_db()

        # Cleanup is an optimization; the API works without it
        try:
            from services.background_scheduler import start_scheduler

            await start_scheduler()
        except Exception as e:
            logger.exception("scheduler_start_failed", error=str(e))

        logger.info("app_started")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("app_stopping")

        try:
            from services.background_scheduler import stop_scheduler

            await stop_scheduler()
        except Exception as e:
            logger.warning("scheduler_stop_failed", error=str(e))

        # Flush pending security event writes before the pool goes away
        from services.security_events import get_security_event_sink

        await get_security_event_sink().drain()

        await close_db()
        logger.info("app_stopped")

    return stop_app
