"""Tests for loan lifecycle rules."""

from datetime import datetime, timedelta, timezone

import pytest

from lendingdesk.db.models import to_iso
from lendingdesk.errors import ErrorKind, LendingError
from lendingdesk.loans import Loan, LoanStatus
from lendingdesk.loans import state
from lendingdesk.loans.state import (
    can_transition,
    ensure_open,
    plan_renewal,
    plan_return,
    sources_for,
)

# Mapper configuration needs every model registered
pytestmark = pytest.mark.usefixtures("db")

NOW = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)


def make_loan(status=LoanStatus.BORROWED, due_in_days=3, renew_count=0) -> Loan:
    return Loan(
        id="loan-1",
        patron_id="patron-1",
        item_id="item-1",
        status=status.value,
        borrowed_at=to_iso(NOW - timedelta(days=10)),
        due_at=to_iso(NOW + timedelta(days=due_in_days)),
        renew_count=renew_count,
    )


class TestTransitions:
    """Tests for the transition table."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (LoanStatus.BORROWED, LoanStatus.OVERDUE),
            (LoanStatus.BORROWED, LoanStatus.RETURNED),
            (LoanStatus.BORROWED, LoanStatus.BORROWED),
            (LoanStatus.OVERDUE, LoanStatus.RETURNED),
            (LoanStatus.OVERDUE, LoanStatus.BORROWED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize("target", list(LoanStatus))
    def test_returned_is_terminal(self, target):
        assert not can_transition(LoanStatus.RETURNED, target)

    def test_overdue_does_not_loop(self):
        assert not can_transition(LoanStatus.OVERDUE, LoanStatus.OVERDUE)

    @pytest.mark.parametrize(
        "target,expected",
        [
            (LoanStatus.RETURNED, (LoanStatus.BORROWED, LoanStatus.OVERDUE)),
            (LoanStatus.BORROWED, (LoanStatus.BORROWED, LoanStatus.OVERDUE)),
            (LoanStatus.OVERDUE, (LoanStatus.BORROWED,)),
        ],
    )
    def test_sources_for(self, target, expected):
        assert sources_for(target) == expected

    def test_guarded_updates_follow_the_table(
        self, monkeypatch, lending, clock, admin, patron, item
    ):
        receipt = lending.borrow(patron.id, item.id).value
        clock.advance(days=15)
        lending.sweep_overdue()
        monkeypatch.setitem(
            state.TRANSITIONS, LoanStatus.OVERDUE, frozenset({LoanStatus.RETURNED})
        )

        result = lending.extend_due_date(
            receipt.loan_id, clock.now + timedelta(days=7), admin.id
        )

        assert not result.ok
        assert lending.get_loan(receipt.loan_id).status == LoanStatus.OVERDUE

    def test_ensure_open_rejects_returned(self):
        with pytest.raises(LendingError) as exc_info:
            ensure_open(make_loan(LoanStatus.RETURNED))
        assert exc_info.value.kind == ErrorKind.ALREADY_RETURNED


class TestPlanReturn:
    """Tests for computing a return."""

    def test_on_time(self):
        plan = plan_return(make_loan(due_in_days=1), NOW)
        assert plan.returned_at == NOW
        assert plan.was_late is False

    def test_late(self):
        plan = plan_return(make_loan(LoanStatus.OVERDUE, due_in_days=-2), NOW)
        assert plan.was_late is True

    def test_returned_exactly_at_due_is_on_time(self):
        assert plan_return(make_loan(due_in_days=0), NOW).was_late is False

    def test_already_returned(self):
        with pytest.raises(LendingError) as exc_info:
            plan_return(make_loan(LoanStatus.RETURNED), NOW)
        assert exc_info.value.kind == ErrorKind.ALREADY_RETURNED


class TestPlanRenewal:
    """Tests for computing a renewal."""

    def test_counts_from_now(self):
        new_due = plan_renewal(
            make_loan(due_in_days=5), NOW, allow_renewals=True, max_renewals=2, loan_days=14
        )
        assert new_due == NOW + timedelta(days=14)

    def test_overdue_loan_can_renew(self):
        new_due = plan_renewal(
            make_loan(LoanStatus.OVERDUE, due_in_days=-1),
            NOW,
            allow_renewals=True,
            max_renewals=1,
            loan_days=7,
        )
        assert new_due == NOW + timedelta(days=7)

    def test_renewals_disabled(self):
        with pytest.raises(LendingError) as exc_info:
            plan_renewal(make_loan(), NOW, allow_renewals=False, max_renewals=5, loan_days=14)
        assert exc_info.value.kind == ErrorKind.RENEWAL_DENIED
        assert exc_info.value.message == "Renewals are disabled"

    def test_maximum_reached(self):
        with pytest.raises(LendingError) as exc_info:
            plan_renewal(
                make_loan(renew_count=1), NOW, allow_renewals=True, max_renewals=1, loan_days=14
            )
        assert exc_info.value.kind == ErrorKind.RENEWAL_DENIED
        assert "(1)" in exc_info.value.message

    def test_zero_max_renewals(self):
        with pytest.raises(LendingError) as exc_info:
            plan_renewal(make_loan(), NOW, allow_renewals=True, max_renewals=0, loan_days=14)
        assert exc_info.value.kind == ErrorKind.RENEWAL_DENIED

    def test_returned_loan(self):
        with pytest.raises(LendingError) as exc_info:
            plan_renewal(
                make_loan(LoanStatus.RETURNED), NOW, allow_renewals=True, max_renewals=3, loan_days=14
            )
        assert exc_info.value.kind == ErrorKind.ALREADY_RETURNED


class TestLoanModel:
    """Tests for Loan helpers."""

    def test_is_past_due(self):
        assert make_loan(due_in_days=-1).is_past_due(NOW)
        assert not make_loan(due_in_days=1).is_past_due(NOW)
        assert not make_loan(LoanStatus.RETURNED, due_in_days=-1).is_past_due(NOW)

    def test_days_overdue(self):
        assert make_loan(due_in_days=-3).days_overdue(NOW) == 3
        assert make_loan(due_in_days=2).days_overdue(NOW) == 0

    def test_due_datetime(self):
        assert make_loan(due_in_days=3).due_datetime == NOW + timedelta(days=3)
