"""Pytest configuration and shared fixtures.

This module provides fixtures for testing lendingdesk, including
in-memory and file-backed databases, a controllable clock, and sample
patrons and items.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from lendingdesk.catalog import CatalogManager, Item, ItemCreate
from lendingdesk.config import reset_config
from lendingdesk.db.sqlite import Database, reset_db
from lendingdesk.lending import LendingManager
from lendingdesk.patrons import Patron, PatronCreate, PatronManager, PatronRole

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_globals() -> Generator[None, None, None]:
    """Keep the global config and database from leaking between tests."""
    reset_db()
    reset_config()
    yield
    reset_db()
    reset_config()


@pytest.fixture
def clock() -> FrozenClock:
    """A clock frozen at a fixed instant."""
    return FrozenClock()


@pytest.fixture
def db() -> Generator[Database, None, None]:
    """Create an in-memory database for testing."""
    database = Database(":memory:", retry_base_delay=0)
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def file_db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a file-backed database that several threads can share."""
    database = Database(str(tmp_path / "lending.db"), busy_timeout=10, retry_base_delay=0.01)
    database.create_tables()
    yield database
    database.dispose()


# ============================================================================
# Manager Fixtures
# ============================================================================


@pytest.fixture
def patrons(db: Database, clock: FrozenClock) -> PatronManager:
    return PatronManager(db, clock)


@pytest.fixture
def catalog(db: Database, clock: FrozenClock) -> CatalogManager:
    return CatalogManager(db, clock)


@pytest.fixture
def lending(db: Database, clock: FrozenClock) -> LendingManager:
    return LendingManager(db, clock)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def admin(patrons: PatronManager) -> Patron:
    """Register an administrator."""
    return patrons.register_patron(
        PatronCreate(full_name="Ada Admin", registered_number="A-001", role=PatronRole.ADMIN)
    ).value


@pytest.fixture
def patron(patrons: PatronManager) -> Patron:
    """Register a patron."""
    return patrons.register_patron(
        PatronCreate(full_name="Pat Reader", email="pat@example.com", registered_number="P-001")
    ).value


@pytest.fixture
def other_patron(patrons: PatronManager) -> Patron:
    """Register a second patron."""
    return patrons.register_patron(
        PatronCreate(full_name="Olive Other", registered_number="P-002")
    ).value


@pytest.fixture
def make_item(catalog: CatalogManager, admin: Patron):
    """Factory that adds an item to the catalog."""

    def _make(code: str, copies: int = 1, title: str = None, **fields) -> Item:
        result = catalog.create_item(
            ItemCreate(code=code, title=title or f"Title {code}", total_copies=copies, **fields),
            admin.id,
        )
        assert result.ok, result
        return result.value

    return _make


@pytest.fixture
def item(make_item) -> Item:
    """An item with two copies."""
    return make_item("BK-001", copies=2, title="Dune", author="Frank Herbert")


@pytest.fixture
def single_copy_item(make_item) -> Item:
    """An item with a single copy."""
    return make_item("BK-100", copies=1, title="Solaris", author="Stanislaw Lem")


# ============================================================================
# CLI Testing Fixtures
# ============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner
    return CliRunner()
