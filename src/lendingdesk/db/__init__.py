"""Database module: ORM base, sessions and transactions."""

from .models import Base, from_iso, generate_uuid, to_iso, utc_now
from .sqlite import Database, get_db, is_transient, reset_db

__all__ = [
    "Base",
    "Database",
    "from_iso",
    "generate_uuid",
    "get_db",
    "is_transient",
    "reset_db",
    "to_iso",
    "utc_now",
]
