"""Loan lifecycle transitions.

States: BORROWED (initial), OVERDUE, RETURNED (terminal).

    BORROWED -> OVERDUE    sweep, once due_at has passed
    BORROWED -> RETURNED   return
    OVERDUE  -> RETURNED   return
    BORROWED -> BORROWED   renew / administrative extension
    OVERDUE  -> BORROWED   renew / administrative extension

Every transition is applied with an UPDATE guarded on the source states, so a
writer that lost a race changes nothing and is told so by the row count.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..db.models import to_iso
from ..errors import ErrorKind, LendingError
from .models import Loan
from .schemas import LoanStatus

TRANSITIONS: dict[LoanStatus, frozenset[LoanStatus]] = {
    LoanStatus.BORROWED: frozenset(
        {LoanStatus.OVERDUE, LoanStatus.RETURNED, LoanStatus.BORROWED}
    ),
    LoanStatus.OVERDUE: frozenset({LoanStatus.RETURNED, LoanStatus.BORROWED}),
    LoanStatus.RETURNED: frozenset(),
}


def can_transition(current: LoanStatus, target: LoanStatus) -> bool:
    """Check whether ``current -> target`` is a legal transition."""
    return target in TRANSITIONS[current]


def sources_for(target: LoanStatus) -> tuple[LoanStatus, ...]:
    """States from which ``target`` may be entered, in declaration order."""
    return tuple(state for state, targets in TRANSITIONS.items() if target in targets)


def ensure_open(loan: Loan) -> None:
    """Reject any mutation of a returned loan."""
    if loan.status == LoanStatus.RETURNED.value:
        raise LendingError(ErrorKind.ALREADY_RETURNED, "Loan has already been returned")


@dataclass(frozen=True)
class ReturnPlan:
    returned_at: datetime
    was_late: bool


def plan_return(loan: Loan, now: datetime) -> ReturnPlan:
    """Compute the effect of returning ``loan`` at ``now``."""
    ensure_open(loan)
    return ReturnPlan(returned_at=now, was_late=loan.due_at < to_iso(now))


def plan_renewal(
    loan: Loan,
    now: datetime,
    allow_renewals: bool,
    max_renewals: int,
    loan_days: int,
) -> datetime:
    """Compute the new due date for a renewal.

    The new due date counts ``loan_days`` from ``now``, not from the current
    due date.

    Raises:
        LendingError: ALREADY_RETURNED or RENEWAL_DENIED
    """
    ensure_open(loan)
    if not allow_renewals:
        raise LendingError(ErrorKind.RENEWAL_DENIED, "Renewals are disabled")
    if loan.renew_count >= max_renewals:
        raise LendingError(
            ErrorKind.RENEWAL_DENIED,
            f"Maximum renewals reached ({max_renewals})",
        )
    return now + timedelta(days=loan_days)


def _in_states(states: tuple[LoanStatus, ...]):
    return Loan.status.in_([s.value for s in states])


def _guarded_update(session: Session, loan_id: str, target: LoanStatus, **values) -> int:
    stmt = (
        update(Loan)
        .where(Loan.id == loan_id, _in_states(sources_for(target)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount


def mark_returned(session: Session, loan: Loan, plan: ReturnPlan) -> None:
    """Apply BORROWED/OVERDUE -> RETURNED.

    Raises:
        LendingError: ALREADY_RETURNED if another writer returned it first
    """
    stamp = to_iso(plan.returned_at)
    updated = _guarded_update(
        session,
        loan.id,
        LoanStatus.RETURNED,
        status=LoanStatus.RETURNED.value,
        returned_at=stamp,
        updated_at=stamp,
    )
    if updated != 1:
        raise LendingError(ErrorKind.ALREADY_RETURNED, "Loan has already been returned")
    session.refresh(loan)


def mark_renewed(session: Session, loan: Loan, new_due_at: datetime, now: datetime) -> None:
    """Apply a renewal: new due date, renew_count + 1, status BORROWED.

    The update is also guarded on the renew_count that was read, so two
    concurrent renewals cannot both consume the same allowance.
    """
    stmt = (
        update(Loan)
        .where(
            Loan.id == loan.id,
            _in_states(sources_for(LoanStatus.BORROWED)),
            Loan.renew_count == loan.renew_count,
        )
        .values(
            due_at=to_iso(new_due_at),
            renew_count=Loan.renew_count + 1,
            status=LoanStatus.BORROWED.value,
            updated_at=to_iso(now),
        )
        .execution_options(synchronize_session=False)
    )
    if session.execute(stmt).rowcount != 1:
        session.refresh(loan)
        ensure_open(loan)
        raise LendingError(ErrorKind.RENEWAL_DENIED, "Loan was renewed concurrently")
    session.refresh(loan)


def mark_extended(session: Session, loan: Loan, new_due_at: datetime, now: datetime) -> None:
    """Apply an administrative due-date extension (OVERDUE resets to BORROWED)."""
    updated = _guarded_update(
        session,
        loan.id,
        LoanStatus.BORROWED,
        due_at=to_iso(new_due_at),
        status=LoanStatus.BORROWED.value,
        updated_at=to_iso(now),
    )
    if updated != 1:
        raise LendingError(ErrorKind.ALREADY_RETURNED, "Loan has already been returned")
    session.refresh(loan)


def mark_overdue(session: Session, now: datetime) -> int:
    """Apply BORROWED -> OVERDUE to every lapsed loan; returns rows changed."""
    stamp = to_iso(now)
    stmt = (
        update(Loan)
        .where(
            _in_states(sources_for(LoanStatus.OVERDUE)),
            Loan.due_at < stamp,
        )
        .values(status=LoanStatus.OVERDUE.value, updated_at=stamp)
        .execution_options(synchronize_session=False)
    )
    return session.execute(stmt).rowcount
