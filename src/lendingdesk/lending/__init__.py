"""Lending transactions.

Provides functionality for:
- Borrowing, returning and renewing items
- Administrative returns and due-date extensions
- Overdue sweeps
"""

from .manager import LendingManager
from .sweeper import OverdueSweeper

__all__ = ["LendingManager", "OverdueSweeper"]
