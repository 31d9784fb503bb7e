"""Consistency checks over the ledger and loan records."""

from .checker import IntegrityChecker, IntegrityIssue, IntegrityReport, IssueSeverity

__all__ = ["IntegrityChecker", "IntegrityIssue", "IntegrityReport", "IssueSeverity"]
