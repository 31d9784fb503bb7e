"""lendingdesk - transaction engine for a physical-item lending service.

Provides:
- Inventory ledger with copy-count accounting
- Loan lifecycle (borrow, return, renew, overdue sweep)
- Lending policy store and administrative audit trail
- Read-only library statistics and integrity checks
"""

__version__ = "0.1.0"
