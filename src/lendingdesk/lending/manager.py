"""Lending manager: borrow, return, renew and administrative overrides.

Every operation re-reads its rows inside a single transaction, validates
them against the current policy, applies guarded updates and commits. No
state is kept on the manager between calls.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..audit.manager import AuditLog
from ..audit.schemas import AuditAction
from ..catalog import ledger
from ..catalog.manager import CatalogManager
from ..catalog.models import Item
from ..db.models import to_iso
from ..db.sqlite import Database
from ..errors import ErrorKind, LendingError
from ..loans import state
from ..loans.models import OPEN_STATUSES, Loan
from ..loans.schemas import (
    BorrowReceipt,
    LoanResponse,
    LoanStatus,
    RenewReceipt,
    ReturnReceipt,
)
from ..patrons.access import require_admin, require_patron
from ..policy.schemas import PolicyResponse, PolicyUpdate
from ..policy.store import PolicyStore, load_policy
from ..results import Result
from ..service import Clock, TransactionalService
from ..stats.aggregator import LibraryStats, StatsAggregator
from .sweeper import OverdueSweeper

logger = logging.getLogger(__name__)


def _lock_loan(session: Session, loan_id: str) -> Loan:
    loan = session.execute(
        select(Loan).where(Loan.id == loan_id).with_for_update()
    ).scalar_one_or_none()
    if loan is None:
        raise LendingError(ErrorKind.NOT_FOUND, "Loan not found")
    return loan


class LendingManager(TransactionalService):
    """Coordinates lending transactions over the ledger and loan records."""

    def __init__(
        self,
        db: Optional[Database] = None,
        clock: Optional[Clock] = None,
        audit: Optional[AuditLog] = None,
    ):
        """Initialize lending manager.

        Args:
            db: Database instance
            clock: Returns the current aware UTC time
            audit: Audit log for administrator actions
        """
        super().__init__(db, clock, audit)
        self.policy = PolicyStore(self.db, self.clock, self.audit)
        self.catalog = CatalogManager(self.db, self.clock, self.audit)
        self.sweeper = OverdueSweeper(self.db, self.clock)
        self.stats = StatsAggregator(self.db, self.clock)

    # -------------------------------------------------------------------------
    # Patron operations
    # -------------------------------------------------------------------------

    def borrow(self, patron_id: Optional[str], item_id: str) -> Result[BorrowReceipt]:
        """Borrow one copy of an item.

        Args:
            patron_id: Borrowing patron
            item_id: Item to borrow

        Returns:
            Loan ID and due date, or UNAUTHENTICATED, LIMIT_REACHED,
            DUPLICATE_LOAN, NOT_FOUND, INACTIVE, NOT_AVAILABLE
        """
        return self._run(
            "borrow", lambda session: self._borrow(session, patron_id, item_id, None)
        )

    def borrow_for_patron(
        self, admin_id: str, patron_id: str, item_id: str
    ) -> Result[BorrowReceipt]:
        """Borrow on a patron's behalf as an administrator.

        The patron's borrow limit still applies; the loan records the
        administrator in ``created_by``.
        """

        def _borrow(session: Session) -> BorrowReceipt:
            require_admin(session, admin_id)
            return self._borrow(session, patron_id, item_id, admin_id)

        result = self._run("borrow_for_patron", _borrow)
        return self._record(
            result,
            admin_id,
            AuditAction.LOAN_CREATE,
            lambda receipt: {
                "loan_id": receipt.loan_id,
                "patron_id": patron_id,
                "item_id": item_id,
            },
        )

    def return_loan(
        self,
        loan_id: str,
        patron_id: Optional[str] = None,
        admin_id: Optional[str] = None,
    ) -> Result[ReturnReceipt]:
        """Return a loan.

        Patrons may only return their own loans; an administrator may return
        any loan, which is audited as an override.

        Args:
            loan_id: Loan to return
            patron_id: Returning patron (ignored when admin_id is given)
            admin_id: Administrator overriding the return

        Returns:
            Whether the return was late, or NOT_FOUND, UNAUTHENTICATED,
            UNAUTHORIZED, ALREADY_RETURNED
        """
        details: dict[str, Any] = {}

        def _return(session: Session) -> ReturnReceipt:
            if admin_id is not None:
                require_admin(session, admin_id)
            elif not patron_id:
                raise LendingError(ErrorKind.UNAUTHENTICATED, "Not authenticated")

            now = self.clock()
            loan = _lock_loan(session, loan_id)
            if admin_id is None and loan.patron_id != patron_id:
                raise LendingError(ErrorKind.UNAUTHORIZED, "Loan belongs to another patron")

            plan = state.plan_return(loan, now)
            state.mark_returned(session, loan, plan)
            ledger.release_copy(session, loan.item_id, now)

            details.update(patron_id=loan.patron_id, item_id=loan.item_id)
            return ReturnReceipt(
                loan_id=loan.id, returned_at=plan.returned_at, was_late=plan.was_late
            )

        result = self._run("return", _return)
        if admin_id is None:
            return result
        return self._record(
            result,
            admin_id,
            AuditAction.LOAN_OVERRIDE_RETURN,
            lambda receipt: {
                "loan_id": receipt.loan_id,
                "was_late": receipt.was_late,
                **details,
            },
        )

    def renew(self, loan_id: str, patron_id: Optional[str]) -> Result[RenewReceipt]:
        """Renew a loan for another loan period counted from now.

        Returns:
            New due date and renewals remaining, or NOT_FOUND, UNAUTHENTICATED,
            UNAUTHORIZED, ALREADY_RETURNED, RENEWAL_DENIED
        """

        def _renew(session: Session) -> RenewReceipt:
            require_patron(session, patron_id)
            now = self.clock()
            loan = _lock_loan(session, loan_id)
            if loan.patron_id != patron_id:
                raise LendingError(ErrorKind.UNAUTHORIZED, "Loan belongs to another patron")

            policy = load_policy(session)
            new_due_at = state.plan_renewal(
                loan,
                now,
                allow_renewals=policy.allow_renewals,
                max_renewals=policy.max_renewals,
                loan_days=policy.default_loan_days,
            )
            state.mark_renewed(session, loan, new_due_at, now)

            return RenewReceipt(
                loan_id=loan.id,
                new_due_at=new_due_at,
                renewals_remaining=max(0, policy.max_renewals - loan.renew_count),
            )

        return self._run("renew", _renew)

    # -------------------------------------------------------------------------
    # Administrative operations
    # -------------------------------------------------------------------------

    def extend_due_date(
        self, loan_id: str, new_due_at: datetime, admin_id: str
    ) -> Result[LoanResponse]:
        """Move a loan's due date to a future time; OVERDUE becomes BORROWED.

        Returns:
            Updated loan, or UNAUTHENTICATED, UNAUTHORIZED, NOT_FOUND,
            ALREADY_RETURNED, VALIDATION_ERROR (date not in the future)
        """
        if new_due_at.tzinfo is None:
            new_due_at = new_due_at.replace(tzinfo=timezone.utc)
        previous: dict[str, str] = {}

        def _extend(session: Session) -> LoanResponse:
            require_admin(session, admin_id)
            now = self.clock()
            loan = _lock_loan(session, loan_id)
            state.ensure_open(loan)
            if new_due_at <= now:
                raise LendingError(
                    ErrorKind.VALIDATION_ERROR, "New due date must be in the future"
                )

            previous["due_at"] = loan.due_at
            state.mark_extended(session, loan, new_due_at, now)
            return LoanResponse.model_validate(loan)

        result = self._run("extend_due_date", _extend)
        return self._record(
            result,
            admin_id,
            AuditAction.LOAN_EXTEND,
            lambda loan: {
                "loan_id": loan.id,
                "previous_due_at": previous.get("due_at"),
                "new_due_at": to_iso(new_due_at),
            },
        )

    def sweep_overdue(self) -> int:
        """Mark lapsed loans OVERDUE; returns how many changed."""
        return self.sweeper.sweep()

    def get_stats(self) -> LibraryStats:
        """Get library statistics."""
        return self.stats.get_stats()

    def update_policy(
        self, partial: Union[PolicyUpdate, dict[str, Any]], admin_id: str
    ) -> Result[PolicyResponse]:
        """Update the lending policy as an administrator."""
        return self.policy.update_as_admin(partial, admin_id)

    def adjust_catalog_total(
        self, item_id: str, new_total: int, admin_id: str
    ) -> Result[Item]:
        """Set an item's total copies as an administrator."""
        return self.catalog.adjust_total(item_id, new_total, admin_id)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get a loan by ID."""
        with self.db.read_session() as session:
            loan = session.get(Loan, loan_id)
            if loan:
                session.expunge(loan)
            return loan

    def list_loans(
        self,
        status: Optional[LoanStatus] = None,
        patron_id: Optional[str] = None,
        item_id: Optional[str] = None,
        open_only: bool = False,
        overdue_only: bool = False,
    ) -> list[Loan]:
        """List loans with optional filters, newest first.

        Args:
            status: Filter by status
            patron_id: Filter by patron
            item_id: Filter by item
            open_only: Only BORROWED or OVERDUE loans
            overdue_only: Only OVERDUE loans or BORROWED loans past due
        """
        with self.db.read_session() as session:
            stmt = select(Loan)

            if status:
                stmt = stmt.where(Loan.status == status.value)
            if patron_id:
                stmt = stmt.where(Loan.patron_id == patron_id)
            if item_id:
                stmt = stmt.where(Loan.item_id == item_id)
            if open_only:
                stmt = stmt.where(Loan.status.in_(OPEN_STATUSES))
            if overdue_only:
                stmt = stmt.where(
                    Loan.status.in_(OPEN_STATUSES),
                    Loan.due_at < to_iso(self.clock()),
                )

            stmt = stmt.order_by(Loan.borrowed_at.desc())

            loans = session.execute(stmt).scalars().all()
            for loan in loans:
                session.expunge(loan)
            return list(loans)

    def list_patron_loans(self, patron_id: str, open_only: bool = False) -> list[Loan]:
        """Loans held by one patron."""
        return self.list_loans(patron_id=patron_id, open_only=open_only)

    def get_loans_due_soon(self, days: int = 3) -> list[Loan]:
        """Open loans falling due within ``days`` days, soonest first."""
        now = self.clock()
        with self.db.read_session() as session:
            stmt = (
                select(Loan)
                .where(
                    Loan.status == LoanStatus.BORROWED.value,
                    Loan.due_at >= to_iso(now),
                    Loan.due_at <= to_iso(now + timedelta(days=days)),
                )
                .order_by(Loan.due_at)
            )
            loans = session.execute(stmt).scalars().all()
            for loan in loans:
                session.expunge(loan)
            return list(loans)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _borrow(
        self,
        session: Session,
        patron_id: Optional[str],
        item_id: str,
        created_by: Optional[str],
    ) -> BorrowReceipt:
        patron = require_patron(session, patron_id, for_update=True)
        now = self.clock()
        policy = load_policy(session)

        open_loans = session.execute(
            select(func.count()).select_from(Loan).where(
                Loan.patron_id == patron.id,
                Loan.status.in_(OPEN_STATUSES),
            )
        ).scalar_one()
        if open_loans >= policy.max_active_loans_per_patron:
            raise LendingError(
                ErrorKind.LIMIT_REACHED,
                f"Borrow limit reached ({policy.max_active_loans_per_patron} loans)",
            )

        duplicate = session.execute(
            select(Loan.id).where(
                Loan.patron_id == patron.id,
                Loan.item_id == item_id,
                Loan.status.in_(OPEN_STATUSES),
            )
        ).first()
        if duplicate:
            raise LendingError(ErrorKind.DUPLICATE_LOAN, "You already have this item on loan")

        ledger.reserve_copy(session, item_id, now)

        due_at = now + timedelta(days=policy.default_loan_days)
        loan = Loan(
            patron_id=patron.id,
            item_id=item_id,
            status=LoanStatus.BORROWED.value,
            borrowed_at=to_iso(now),
            due_at=to_iso(due_at),
            renew_count=0,
            created_by=created_by,
        )
        session.add(loan)
        try:
            session.flush()
        except IntegrityError as e:
            raise LendingError(
                ErrorKind.DUPLICATE_LOAN, "You already have this item on loan"
            ) from e

        logger.debug("Loan %s: patron %s item %s due %s", loan.id, patron.id, item_id, loan.due_at)
        return BorrowReceipt(loan_id=loan.id, due_at=due_at)
