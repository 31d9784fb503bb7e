"""Tests for the CLI interface."""

import re

import pytest
from typer.testing import CliRunner

from lendingdesk.cli import app


@pytest.fixture(autouse=True)
def setup_test_db(tmp_path, monkeypatch):
    """Point the CLI at a fresh database file for each test."""
    monkeypatch.setenv("LENDINGDESK_DB_PATH", str(tmp_path / "cli.db"))


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


def invoke(runner: CliRunner, *args: str):
    return runner.invoke(app, list(args))


def created_id(output: str) -> str:
    match = re.search(r"^(?:Loan )?ID: (\S+)", output, re.MULTILINE)
    assert match, output
    return match.group(1)


@pytest.fixture
def admin_id(runner) -> str:
    result = invoke(runner, "patron", "add", "Ada Admin", "--admin")
    assert result.exit_code == 0, result.stdout
    return created_id(result.stdout)


@pytest.fixture
def patron_id(runner) -> str:
    result = invoke(runner, "patron", "add", "Pat Reader", "--number", "P-1")
    assert result.exit_code == 0, result.stdout
    return created_id(result.stdout)


@pytest.fixture
def item_code(runner, admin_id) -> str:
    result = invoke(runner, "item", "add", "BK-1", "Dune", "--author", "Frank Herbert", "--as", admin_id)
    assert result.exit_code == 0, result.stdout
    return "BK-1"


class TestCLIBasics:
    """Tests for basic CLI functionality."""

    def test_help(self, runner: CliRunner):
        result = invoke(runner, "--help")
        assert result.exit_code == 0
        assert "Lend physical items" in result.stdout

    def test_version(self, runner: CliRunner):
        result = invoke(runner, "version")
        assert result.exit_code == 0
        assert "0.1.0" in result.stdout

    def test_init(self, runner: CliRunner, tmp_path):
        result = invoke(runner, "init")
        assert result.exit_code == 0
        assert "Database ready" in result.stdout
        assert (tmp_path / "cli.db").exists()


class TestPatronCommands:
    def test_add_and_list(self, runner, admin_id, patron_id):
        result = invoke(runner, "patron", "list")
        assert result.exit_code == 0
        assert "Ada Admin" in result.stdout
        assert "Pat Reader" in result.stdout

    def test_duplicate_number(self, runner, patron_id):
        result = invoke(runner, "patron", "add", "Copy", "--number", "P-1")
        assert result.exit_code == 1
        assert "VALIDATION_ERROR" in result.stdout

    def test_promote(self, runner, admin_id, patron_id):
        result = invoke(runner, "patron", "role", patron_id, "admin", "--as", admin_id)
        assert result.exit_code == 0
        assert "is now admin" in result.stdout

    def test_invalid_role(self, runner, admin_id, patron_id):
        result = invoke(runner, "patron", "role", patron_id, "wizard", "--as", admin_id)
        assert result.exit_code == 1


class TestItemCommands:
    def test_add_and_list(self, runner, item_code):
        result = invoke(runner, "item", "list")
        assert result.exit_code == 0
        assert "BK-1" in result.stdout

    def test_patron_cannot_add(self, runner, patron_id):
        result = invoke(runner, "item", "add", "BK-2", "Nope", "--as", patron_id)
        assert result.exit_code == 1
        assert "UNAUTHORIZED" in result.stdout

    def test_update_total(self, runner, admin_id, item_code):
        result = invoke(runner, "item", "total", item_code, "4", "--as", admin_id)
        assert result.exit_code == 0
        assert "4/4 available" in result.stdout

    def test_update_requires_changes(self, runner, admin_id, item_code):
        result = invoke(runner, "item", "update", item_code, "--as", admin_id)
        assert result.exit_code == 0
        assert "Nothing to update" in result.stdout

    def test_unknown_item(self, runner, admin_id):
        result = invoke(runner, "item", "delete", "NOPE", "--as", admin_id)
        assert result.exit_code == 1
        assert "NOT_FOUND" in result.stdout

    def test_delete(self, runner, admin_id, item_code):
        result = invoke(runner, "item", "delete", item_code, "--as", admin_id)
        assert result.exit_code == 0
        assert "Item deleted" in result.stdout


class TestLoanCommands:
    def test_borrow_and_return(self, runner, patron_id, item_code):
        result = invoke(runner, "loan", "borrow", item_code, "--patron", patron_id)
        assert result.exit_code == 0
        assert "Borrowed, due" in result.stdout
        loan_id = created_id(result.stdout)

        result = invoke(runner, "loan", "return", loan_id, "--patron", patron_id)
        assert result.exit_code == 0
        assert "Returned on time" in result.stdout

    def test_no_copies_left(self, runner, admin_id, patron_id, item_code):
        invoke(runner, "loan", "borrow", item_code, "--patron", patron_id)
        other = created_id(invoke(runner, "patron", "add", "Olive Other").stdout)

        result = invoke(runner, "loan", "borrow", item_code, "--patron", other)

        assert result.exit_code == 1
        assert "NOT_AVAILABLE" in result.stdout

    def test_renew(self, runner, patron_id, item_code):
        loan_id = created_id(
            invoke(runner, "loan", "borrow", item_code, "--patron", patron_id).stdout
        )

        result = invoke(runner, "loan", "renew", loan_id, "--patron", patron_id)
        assert result.exit_code == 0
        assert "Renewals remaining: 0" in result.stdout

        result = invoke(runner, "loan", "renew", loan_id, "--patron", patron_id)
        assert result.exit_code == 1
        assert "RENEWAL_DENIED" in result.stdout

    def test_extend_rejects_past_date(self, runner, admin_id, patron_id, item_code):
        loan_id = created_id(
            invoke(runner, "loan", "borrow", item_code, "--patron", patron_id).stdout
        )

        result = invoke(runner, "loan", "extend", loan_id, "2000-01-01", "--as", admin_id)

        assert result.exit_code == 1
        assert "VALIDATION_ERROR" in result.stdout

    def test_list(self, runner, patron_id, item_code):
        invoke(runner, "loan", "borrow", item_code, "--patron", patron_id)
        result = invoke(runner, "loan", "list")
        assert result.exit_code == 0
        assert "Loans" in result.stdout

    def test_list_invalid_status(self, runner):
        result = invoke(runner, "loan", "list", "--status", "lost")
        assert result.exit_code == 1


class TestPolicyCommands:
    def test_show(self, runner):
        result = invoke(runner, "policy", "show")
        assert result.exit_code == 0
        assert "Lending Policy" in result.stdout

    def test_set(self, runner, admin_id):
        result = invoke(runner, "policy", "set", "--max-loans", "5", "--as", admin_id)
        assert result.exit_code == 0
        assert "5 loans" in result.stdout

    def test_set_invalid(self, runner, admin_id):
        result = invoke(runner, "policy", "set", "--loan-days", "0", "--as", admin_id)
        assert result.exit_code == 1
        assert "VALIDATION_ERROR" in result.stdout


class TestReportingCommands:
    def test_sweep(self, runner):
        result = invoke(runner, "sweep")
        assert result.exit_code == 0
        assert "0 loan(s) marked overdue" in result.stdout

    def test_stats(self, runner, item_code):
        result = invoke(runner, "stats")
        assert result.exit_code == 0
        assert "Library Statistics" in result.stdout

    def test_audit(self, runner, item_code):
        result = invoke(runner, "audit")
        assert result.exit_code == 0
        assert "Audit Log" in result.stdout

    def test_audit_empty_filter(self, runner, item_code):
        result = invoke(runner, "audit", "--action", "loan_extend")
        assert result.exit_code == 0
        assert "No audit entries" in result.stdout

    def test_check(self, runner, patron_id, item_code):
        invoke(runner, "loan", "borrow", item_code, "--patron", patron_id)
        result = invoke(runner, "check")
        assert result.exit_code == 0
        assert "No integrity problems found" in result.stdout
