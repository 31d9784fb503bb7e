"""Data integrity checking.

Validates the ledger and loan records against each other and identifies
issues.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from sqlalchemy import func, select

from ..catalog.models import Item
from ..db.models import now_iso, to_iso, utc_now
from ..db.sqlite import Database, get_db
from ..loans.models import OPEN_STATUSES, Loan
from ..loans.schemas import LoanStatus
from ..service import Clock


class IssueSeverity(str, Enum):
    """Severity level for integrity issues."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class IntegrityIssue:
    """An integrity issue found during checking."""

    severity: IssueSeverity
    category: str
    message: str
    item_id: Optional[str] = None
    item_code: Optional[str] = None
    loan_id: Optional[str] = None
    suggestion: Optional[str] = None

    def __str__(self) -> str:
        """String representation."""
        prefix = f"[{self.severity.value.upper()}]"
        item_info = f" (Item: {self.item_code})" if self.item_code else ""
        return f"{prefix} {self.category}: {self.message}{item_info}"


@dataclass
class IntegrityReport:
    """Report from integrity check."""

    checked_at: str
    item_count: int = 0
    loan_count: int = 0
    issues: list[IntegrityIssue] = field(default_factory=list)
    passed: bool = True

    @property
    def critical_count(self) -> int:
        """Count of critical issues."""
        return sum(1 for i in self.issues if i.severity == IssueSeverity.CRITICAL)

    @property
    def error_count(self) -> int:
        """Count of error issues."""
        return sum(1 for i in self.issues if i.severity == IssueSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        """Count of warning issues."""
        return sum(1 for i in self.issues if i.severity == IssueSeverity.WARNING)

    def get_issues_by_category(self, category: str) -> list[IntegrityIssue]:
        """Get issues of a specific category."""
        return [i for i in self.issues if i.category == category]


class IntegrityChecker:
    """Checks that copy counters agree with loan records."""

    def __init__(self, db: Optional[Database] = None, clock: Optional[Clock] = None):
        """Initialize integrity checker.

        Args:
            db: Database instance
            clock: Returns the current aware UTC time
        """
        self.db = db or get_db()
        self.clock = clock or utc_now

    def check_all(self) -> IntegrityReport:
        """Run all integrity checks.

        Returns:
            IntegrityReport with all issues found
        """
        report = IntegrityReport(checked_at=now_iso())

        with self.db.read_session() as session:
            report.item_count = session.execute(
                select(func.count()).select_from(Item)
            ).scalar() or 0
            report.loan_count = session.execute(
                select(func.count()).select_from(Loan)
            ).scalar() or 0

            report.issues.extend(self._check_ledger_balance(session))
            report.issues.extend(self._check_duplicate_open_loans(session))
            report.issues.extend(self._check_returned_loans(session))
            report.issues.extend(self._check_inactive_items(session))
            report.issues.extend(self._check_unswept_loans(session))

        report.passed = report.critical_count == 0 and report.error_count == 0
        return report

    def _check_ledger_balance(self, session) -> list[IntegrityIssue]:
        """available + open loans must equal total for every item."""
        issues = []
        open_counts = (
            select(Loan.item_id, func.count().label("open_loans"))
            .where(Loan.status.in_(OPEN_STATUSES))
            .group_by(Loan.item_id)
            .subquery()
        )
        rows = session.execute(
            select(Item, func.coalesce(open_counts.c.open_loans, 0)).outerjoin(
                open_counts, open_counts.c.item_id == Item.id
            )
        ).all()

        for item, open_loans in rows:
            if item.available_copies + open_loans != item.total_copies:
                issues.append(IntegrityIssue(
                    severity=IssueSeverity.CRITICAL,
                    category="ledger",
                    message=(
                        f"{item.available_copies} available + {open_loans} on loan "
                        f"!= {item.total_copies} total"
                    ),
                    item_id=item.id,
                    item_code=item.code,
                    suggestion="Recount the item's copies before further lending",
                ))
        return issues

    def _check_duplicate_open_loans(self, session) -> list[IntegrityIssue]:
        """At most one open loan per patron and item."""
        rows = session.execute(
            select(Loan.patron_id, Loan.item_id, func.count())
            .where(Loan.status.in_(OPEN_STATUSES))
            .group_by(Loan.patron_id, Loan.item_id)
            .having(func.count() > 1)
        ).all()
        return [
            IntegrityIssue(
                severity=IssueSeverity.CRITICAL,
                category="duplicate_loan",
                message=f"Patron {patron_id} holds {count} open loans on one item",
                item_id=item_id,
            )
            for patron_id, item_id, count in rows
        ]

    def _check_returned_loans(self, session) -> list[IntegrityIssue]:
        """Returned loans carry a return time; open loans do not."""
        issues = []
        stmt = select(Loan).where(
            ((Loan.status == LoanStatus.RETURNED.value) & Loan.returned_at.is_(None))
            | ((Loan.status != LoanStatus.RETURNED.value) & Loan.returned_at.isnot(None))
        )
        for loan in session.execute(stmt).scalars():
            issues.append(IntegrityIssue(
                severity=IssueSeverity.ERROR,
                category="loan_state",
                message=f"Loan status {loan.status} disagrees with returned_at",
                item_id=loan.item_id,
                loan_id=loan.id,
            ))
        return issues

    def _check_inactive_items(self, session) -> list[IntegrityIssue]:
        """Open loans on items that have since been deactivated."""
        rows = session.execute(
            select(Item.id, Item.code, func.count(Loan.id))
            .join(Loan, Loan.item_id == Item.id)
            .where(Item.active.is_(False), Loan.status.in_(OPEN_STATUSES))
            .group_by(Item.id, Item.code)
        ).all()
        return [
            IntegrityIssue(
                severity=IssueSeverity.WARNING,
                category="inactive_item",
                message=f"{count} open loan(s) on an inactive item",
                item_id=item_id,
                item_code=code,
            )
            for item_id, code, count in rows
        ]

    def _check_unswept_loans(self, session) -> list[IntegrityIssue]:
        """Loans past due that the sweeper has not reclassified yet."""
        count = session.execute(
            select(func.count()).select_from(Loan).where(
                Loan.status == LoanStatus.BORROWED.value,
                Loan.due_at < to_iso(self.clock()),
            )
        ).scalar() or 0
        if not count:
            return []
        return [IntegrityIssue(
            severity=IssueSeverity.WARNING,
            category="overdue_sweep",
            message=f"{count} lapsed loan(s) still marked BORROWED",
            suggestion="Run the overdue sweep",
        )]
