"""Schemas for audit entries."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class AuditAction(str, Enum):
    """Privileged mutations that are written to the audit trail."""

    LOAN_CREATE = "LOAN_CREATE"
    LOAN_OVERRIDE_RETURN = "LOAN_OVERRIDE_RETURN"
    LOAN_EXTEND = "LOAN_EXTEND"
    SETTINGS_UPDATE = "SETTINGS_UPDATE"
    ITEM_CREATE = "ITEM_CREATE"
    ITEM_UPDATE = "ITEM_UPDATE"
    ITEM_ADJUST_TOTAL = "ITEM_ADJUST_TOTAL"
    ITEM_DELETE = "ITEM_DELETE"
    BULK_UPLOAD = "BULK_UPLOAD"
    PATRON_ROLE_CHANGE = "PATRON_ROLE_CHANGE"


class AuditEntryResponse(BaseModel):
    """Schema for audit entry responses."""

    id: str
    actor_id: str
    action: str
    metadata: dict[str, Any]
    created_at: datetime
