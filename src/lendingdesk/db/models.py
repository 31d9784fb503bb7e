"""Shared ORM base and column helpers.

Tables are declared beside the code that owns them:
- items: catalog.models
- patrons: patrons.models
- loans: loans.models
- policy: policy.models
- audit_entries: audit.models

Timestamps are stored as fixed-width ISO-8601 UTC strings so that string
comparison in SQL matches chronological order.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime for storage.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def now_iso() -> str:
    """Current time in storage format."""
    return to_iso(utc_now())
