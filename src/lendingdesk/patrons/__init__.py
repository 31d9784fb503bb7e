"""Patron registry and identity checks."""

from .access import require_admin, require_patron
from .manager import PatronManager
from .models import Patron
from .schemas import PatronCreate, PatronResponse, PatronRole

__all__ = [
    "PatronManager",
    "Patron",
    "PatronCreate",
    "PatronResponse",
    "PatronRole",
    "require_admin",
    "require_patron",
]
