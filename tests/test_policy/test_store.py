"""Tests for the policy store."""

import pytest

from lendingdesk.audit import AuditLog
from lendingdesk.errors import ErrorKind
from lendingdesk.policy import DEFAULT_POLICY, PolicyStore, PolicyUpdate


@pytest.fixture
def store(db, clock):
    return PolicyStore(db, clock)


class TestGetPolicy:
    """Tests for reading the policy."""

    def test_defaults_on_fresh_database(self, store):
        policy = store.get()

        assert policy.max_active_loans_per_patron == 3
        assert policy.default_loan_days == 14
        assert policy.fine_per_day == 0.0
        assert policy.allow_renewals is True
        assert policy.max_renewals == 1

    def test_get_values(self, store):
        assert store.get_values() == DEFAULT_POLICY


class TestUpdatePolicy:
    """Tests for partial updates."""

    def test_partial_update_keeps_other_fields(self, store):
        result = store.update({"default_loan_days": 21})

        assert result.ok
        assert result.value.default_loan_days == 21
        assert result.value.max_active_loans_per_patron == 3
        assert store.get().default_loan_days == 21

    def test_accepts_update_model(self, store):
        result = store.update(PolicyUpdate(fine_per_day=0.25, max_renewals=2))

        assert result.ok
        assert store.get().fine_per_day == 0.25
        assert store.get().max_renewals == 2

    @pytest.mark.parametrize(
        "partial",
        [
            {"max_active_loans_per_patron": 0},
            {"default_loan_days": 366},
            {"fine_per_day": -1},
            {"max_renewals": 21},
            {"max_renewals": "many"},
        ],
    )
    def test_out_of_range_rejected(self, store, partial):
        result = store.update(partial)

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert store.get_values() == DEFAULT_POLICY

    def test_unknown_field_rejected(self, store):
        assert store.update({"max_fines": 3}).kind == ErrorKind.VALIDATION_ERROR

    def test_null_rejected(self, store):
        result = store.update({"allow_renewals": None})

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert store.get().allow_renewals is True

    def test_all_or_nothing(self, store):
        """Test one bad field leaves the valid ones unapplied."""
        result = store.update({"max_renewals": 3, "default_loan_days": 0})

        assert not result.ok
        assert store.get().max_renewals == 1

    def test_empty_update(self, store):
        result = store.update({})
        assert result.ok
        assert store.get_values() == DEFAULT_POLICY


class TestAdminUpdate:
    """Tests for administrator policy updates."""

    def test_update_is_audited(self, db, store, admin):
        result = store.update_as_admin({"max_renewals": 4}, admin.id)

        assert result.ok
        entry = AuditLog(db).list_entries(action="SETTINGS_UPDATE")[0]
        assert entry.actor_id == admin.id
        assert entry.metadata == {"max_renewals": 4}

    def test_patron_cannot_update(self, db, store, patron):
        result = store.update_as_admin({"max_renewals": 4}, patron.id)

        assert result.kind == ErrorKind.UNAUTHORIZED
        assert store.get().max_renewals == 1
        assert AuditLog(db).list_entries(action="SETTINGS_UPDATE") == []

    def test_rejected_update_not_audited(self, db, store, admin):
        result = store.update_as_admin({"default_loan_days": -5}, admin.id)

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert AuditLog(db).list_entries(action="SETTINGS_UPDATE") == []
