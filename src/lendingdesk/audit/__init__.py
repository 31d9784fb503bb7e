"""Administrative audit trail."""

from .manager import AuditLog
from .models import AuditEntry
from .schemas import AuditAction, AuditEntryResponse

__all__ = ["AuditLog", "AuditEntry", "AuditAction", "AuditEntryResponse"]
