"""Declarative base shared by all ORM models."""

from typing import Any, Optional

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


def clip(column: Any, value: Optional[str]) -> Optional[str]:
    """Cut ``value`` to the declared length of a ``String`` column."""
    length = getattr(column.type, "length", None)
    if value is None or length is None:
        return value
    return value[:length]
