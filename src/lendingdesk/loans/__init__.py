"""Loan records and their lifecycle.

Provides:
- The loans table
- Legal state transitions and guarded updates
- Loan response and receipt schemas
"""

from .models import OPEN_STATUSES, Loan
from .schemas import (
    BorrowReceipt,
    LoanResponse,
    LoanStatus,
    RenewReceipt,
    ReturnReceipt,
)

__all__ = [
    "OPEN_STATUSES",
    "Loan",
    "BorrowReceipt",
    "LoanResponse",
    "LoanStatus",
    "RenewReceipt",
    "ReturnReceipt",
]
