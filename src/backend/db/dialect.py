"""
Dialect-aware INSERT constructs.

Upserts and constrained inserts are expressed with ``ON CONFLICT`` so they run
as a single atomic statement on both PostgreSQL and SQLite.
"""

from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def dialect_insert(session: AsyncSession, model: Any) -> Any:
    """Return an INSERT supporting ``on_conflict_do_*`` for the session's database."""
    name = session.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert(model)
    if name == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Atomic upsert is not supported on dialect '{name}'")
