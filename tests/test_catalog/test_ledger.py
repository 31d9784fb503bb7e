"""Tests for copy-count accounting."""

import pytest
from sqlalchemy import update

from lendingdesk.catalog import ledger
from lendingdesk.catalog.models import Item
from lendingdesk.errors import ConsistencyFault, ErrorKind, LendingError


def counts(db, item_id):
    with db.read_session() as session:
        item = session.get(Item, item_id)
        return item.available_copies, item.total_copies


class TestReserveCopy:
    """Tests for reserve_copy."""

    def test_decrements_available(self, db, item):
        db.run_transaction(lambda s: ledger.reserve_copy(s, item.id))
        assert counts(db, item.id) == (1, 2)

    def test_no_copies_left(self, db, single_copy_item):
        """Test that availability never goes below zero."""
        db.run_transaction(lambda s: ledger.reserve_copy(s, single_copy_item.id))

        with pytest.raises(LendingError) as exc_info:
            db.run_transaction(lambda s: ledger.reserve_copy(s, single_copy_item.id))

        assert exc_info.value.kind == ErrorKind.NOT_AVAILABLE
        assert counts(db, single_copy_item.id) == (0, 1)

    def test_inactive_item(self, db, item):
        with db.get_session() as session:
            session.execute(update(Item).where(Item.id == item.id).values(active=False))

        with pytest.raises(LendingError) as exc_info:
            db.run_transaction(lambda s: ledger.reserve_copy(s, item.id))

        assert exc_info.value.kind == ErrorKind.INACTIVE
        assert counts(db, item.id) == (2, 2)

    def test_missing_item(self, db):
        with pytest.raises(LendingError) as exc_info:
            db.run_transaction(lambda s: ledger.reserve_copy(s, "no-such-item"))
        assert exc_info.value.kind == ErrorKind.NOT_FOUND


class TestReleaseCopy:
    """Tests for release_copy."""

    def test_increments_available(self, db, item):
        db.run_transaction(lambda s: ledger.reserve_copy(s, item.id))
        db.run_transaction(lambda s: ledger.release_copy(s, item.id))
        assert counts(db, item.id) == (2, 2)

    def test_release_when_all_available_is_a_fault(self, db, item):
        """Test that availability never exceeds the total."""
        with pytest.raises(ConsistencyFault):
            db.run_transaction(lambda s: ledger.release_copy(s, item.id))
        assert counts(db, item.id) == (2, 2)

    def test_release_missing_item_is_a_fault(self, db):
        with pytest.raises(ConsistencyFault):
            db.run_transaction(lambda s: ledger.release_copy(s, "no-such-item"))


class TestAdjustTotal:
    """Tests for adjust_total."""

    def test_increase_without_loans(self, db, item):
        db.run_transaction(lambda s: ledger.adjust_total(s, item.id, 5))
        assert counts(db, item.id) == (5, 5)

    def test_keeps_borrowed_copies_borrowed(self, db, lending, item, patron):
        lending.borrow(patron.id, item.id)

        db.run_transaction(lambda s: ledger.adjust_total(s, item.id, 4))

        assert counts(db, item.id) == (3, 4)

    def test_total_equal_to_borrowed_leaves_none_available(
        self, db, lending, item, patron, other_patron
    ):
        lending.borrow(patron.id, item.id)
        lending.borrow(other_patron.id, item.id)
        db.run_transaction(lambda s: ledger.adjust_total(s, item.id, 5))

        db.run_transaction(lambda s: ledger.adjust_total(s, item.id, 2))

        assert counts(db, item.id) == (0, 2)

    def test_below_borrowed_rejected(self, db, lending, item, patron, other_patron):
        lending.borrow(patron.id, item.id)
        lending.borrow(other_patron.id, item.id)

        with pytest.raises(LendingError) as exc_info:
            db.run_transaction(lambda s: ledger.adjust_total(s, item.id, 1))

        assert exc_info.value.kind == ErrorKind.BELOW_BORROWED
        assert "below 2" in exc_info.value.message
        assert counts(db, item.id) == (0, 2)

    @pytest.mark.parametrize("new_total", [0, -3])
    def test_total_must_be_positive(self, db, item, new_total):
        with pytest.raises(LendingError) as exc_info:
            db.run_transaction(lambda s: ledger.adjust_total(s, item.id, new_total))
        assert exc_info.value.kind == ErrorKind.VALIDATION_ERROR

    def test_counter_mismatch_is_a_fault(self, db, item):
        """Test that counters disagreeing with open loans abort the adjustment."""
        with db.get_session() as session:
            session.execute(
                update(Item).where(Item.id == item.id).values(available_copies=1)
            )

        with pytest.raises(ConsistencyFault):
            db.run_transaction(lambda s: ledger.adjust_total(s, item.id, 3))
        assert counts(db, item.id) == (1, 2)


class TestCountOpenLoans:
    def test_counts_only_open_loans(self, db, lending, item, patron, other_patron):
        first = lending.borrow(patron.id, item.id).value
        lending.borrow(other_patron.id, item.id)
        lending.return_loan(first.loan_id, patron_id=patron.id)

        with db.read_session() as session:
            assert ledger.count_open_loans(session, item.id) == 1
