"""Item catalog and inventory ledger.

Provides functionality for:
- Reserving and releasing copies inside lending transactions
- Adjusting total copy counts without disturbing borrowed copies
- Administrative item creation, editing, deletion and bulk upload
"""

from .manager import CatalogManager
from .models import Item
from .schemas import (
    BulkItemRow,
    BulkUpsertResult,
    ItemCreate,
    ItemResponse,
    ItemUpdate,
)

__all__ = [
    "CatalogManager",
    "Item",
    "BulkItemRow",
    "BulkUpsertResult",
    "ItemCreate",
    "ItemResponse",
    "ItemUpdate",
]
