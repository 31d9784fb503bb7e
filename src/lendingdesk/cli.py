"""Command-line interface for lendingdesk.

Built with Typer for commands and Rich for output. Identities are passed
explicitly: ``--patron`` for the borrowing patron and ``--as`` for the
administrator performing a privileged action.
"""

from datetime import datetime
from typing import Optional, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import get_config
from .db import get_db
from .logging_setup import configure_logging
from .results import Result

T = TypeVar("T")

# Create the main app
app = typer.Typer(
    name="lendingdesk",
    help="Lend physical items to registered patrons.",
    no_args_is_help=True,
)

patron_app = typer.Typer(help="Register patrons and manage roles.")
app.add_typer(patron_app, name="patron")

item_app = typer.Typer(help="Manage catalog items and copy counts.")
app.add_typer(item_app, name="item")

loan_app = typer.Typer(help="Borrow, return, renew and extend loans.")
app.add_typer(loan_app, name="loan")

policy_app = typer.Typer(help="Show or change the lending policy.")
app.add_typer(policy_app, name="policy")

# Rich console for pretty output
console = Console()


# ============================================================================
# Helper Functions
# ============================================================================


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[bold green]Success:[/bold green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")


def unwrap(result: Result[T]) -> T:
    """Return the payload of a successful result or exit with its error."""
    if not result.ok:
        print_error(f"{result.kind.value}: {result.message}")
        raise typer.Exit(1)
    if not result.audit_recorded:
        print_warning("Change saved, but the audit entry could not be written.")
    return result.value


def _lending():
    from .lending import LendingManager

    return LendingManager(get_db())


def _resolve_item_id(ref: str) -> str:
    """Accept an item ID or an item code."""
    from .catalog import CatalogManager

    catalog = CatalogManager(get_db())
    item = catalog.get_item(ref) or catalog.get_item_by_code(ref)
    if item is None:
        print_error(f"NOT_FOUND: No item with ID or code '{ref}'")
        raise typer.Exit(1)
    return item.id


def _fmt(stamp: Optional[str]) -> str:
    if not stamp:
        return "-"
    return datetime.fromisoformat(stamp).strftime("%Y-%m-%d %H:%M")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log committed operations"),
) -> None:
    """Lend physical items to registered patrons."""
    configure_logging("INFO" if verbose else get_config().log_level)


@app.command()
def version() -> None:
    """Show the version."""
    console.print(f"lendingdesk {__version__}")


@app.command()
def init() -> None:
    """Create the database and show the active policy."""
    config = get_config()
    errors = config.validate()
    if errors:
        for error in errors:
            print_error(error)
        raise typer.Exit(1)

    db = get_db()
    db.create_tables()

    from .policy import PolicyStore

    policy = PolicyStore(db).get()
    location = config.db_url or str(config.db_path)
    print_success(f"Database ready at {location}")
    console.print(
        f"[dim]Policy: {policy.max_active_loans_per_patron} loans, "
        f"{policy.default_loan_days} days, {policy.max_renewals} renewal(s)[/dim]"
    )


# ============================================================================
# Patron Commands
# ============================================================================


@patron_app.command("add")
def patron_add(
    name: str = typer.Argument(..., help="Full name"),
    email: Optional[str] = typer.Option(None, "--email", "-e", help="Email address"),
    number: Optional[str] = typer.Option(None, "--number", "-n", help="Registration number"),
    admin: bool = typer.Option(False, "--admin", help="Register as administrator"),
) -> None:
    """Register a patron."""
    from .patrons import PatronCreate, PatronManager, PatronRole

    manager = PatronManager(get_db())
    patron = unwrap(manager.register_patron(PatronCreate(
        full_name=name,
        email=email,
        registered_number=number,
        role=PatronRole.ADMIN if admin else PatronRole.PATRON,
    )))
    print_success(f"Registered {patron.full_name} ({patron.role})")
    console.print(f"ID: {patron.id}")


@patron_app.command("list")
def patron_list(
    admins: bool = typer.Option(False, "--admins", help="Only administrators"),
) -> None:
    """List patrons."""
    from .patrons import PatronManager, PatronRole

    patrons = PatronManager(get_db()).list_patrons(PatronRole.ADMIN if admins else None)
    if not patrons:
        console.print("[dim]No patrons found[/dim]")
        return

    table = Table(title="Patrons", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Number")
    table.add_column("Role")
    for p in patrons:
        table.add_row(p.id, p.full_name, p.registered_number or "-", p.role)
    console.print(table)


@patron_app.command("role")
def patron_role(
    patron_id: str = typer.Argument(..., help="Patron ID"),
    role: str = typer.Argument(..., help="patron or admin"),
    admin_id: str = typer.Option(..., "--as", help="Administrator ID"),
) -> None:
    """Change a patron's role."""
    from .patrons import PatronManager, PatronRole

    try:
        new_role = PatronRole(role.lower())
    except ValueError:
        print_error(f"Invalid role: {role}")
        raise typer.Exit(1)

    patron = unwrap(PatronManager(get_db()).set_role(patron_id, new_role, admin_id))
    print_success(f"{patron.full_name} is now {patron.role}")


# ============================================================================
# Item Commands
# ============================================================================


@item_app.command("add")
def item_add(
    code: str = typer.Argument(..., help="External item code"),
    title: str = typer.Argument(..., help="Title"),
    author: str = typer.Option("", "--author", "-a", help="Author"),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Category"),
    copies: int = typer.Option(1, "--copies", "-n", help="Number of copies"),
    admin_id: str = typer.Option(..., "--as", help="Administrator ID"),
) -> None:
    """Add an item to the catalog."""
    from pydantic import ValidationError

    from .catalog import CatalogManager, ItemCreate

    try:
        data = ItemCreate(
            code=code, title=title, author=author, category=category, total_copies=copies
        )
    except ValidationError as e:
        print_error(f"VALIDATION_ERROR: {e.errors()[0]['msg']}")
        raise typer.Exit(1)

    item = unwrap(CatalogManager(get_db()).create_item(data, admin_id))
    print_success(f"Added {item.code}: {item.title} ({item.total_copies} copies)")
    console.print(f"ID: {item.id}")


@item_app.command("list")
def item_list(
    show_all: bool = typer.Option(False, "--all", help="Include inactive items"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search text"),
) -> None:
    """List catalog items."""
    from .catalog import CatalogManager

    items = CatalogManager(get_db()).list_items(active_only=not show_all, search=search)
    if not items:
        console.print("[dim]No items found[/dim]")
        return

    table = Table(title="Items", show_header=True, header_style="bold magenta")
    table.add_column("Code", style="cyan")
    table.add_column("Title", max_width=40)
    table.add_column("Author", style="green", max_width=25)
    table.add_column("Available", justify="right")
    table.add_column("Status")
    for item in items:
        status = "[green]active[/green]" if item.active else "[dim]inactive[/dim]"
        table.add_row(
            item.code,
            item.title,
            item.author or "-",
            f"{item.available_copies}/{item.total_copies}",
            status,
        )
    console.print(table)


@item_app.command("update")
def item_update(
    item: str = typer.Argument(..., help="Item ID or code"),
    title: Optional[str] = typer.Option(None, "--title", help="New title"),
    author: Optional[str] = typer.Option(None, "--author", help="New author"),
    category: Optional[str] = typer.Option(None, "--category", help="New category"),
    active: Optional[bool] = typer.Option(None, "--active/--inactive", help="Lendable or not"),
    copies: Optional[int] = typer.Option(None, "--copies", help="New total copies"),
    admin_id: str = typer.Option(..., "--as", help="Administrator ID"),
) -> None:
    """Edit an item."""
    from .catalog import CatalogManager, ItemUpdate

    changes = {
        field: value
        for field, value in {
            "title": title,
            "author": author,
            "category": category,
            "active": active,
            "total_copies": copies,
        }.items()
        if value is not None
    }
    if not changes:
        print_warning("Nothing to update")
        return

    item_id = _resolve_item_id(item)
    updated = unwrap(CatalogManager(get_db()).update_item(item_id, ItemUpdate(**changes), admin_id))
    print_success(f"Updated {updated.code}")


@item_app.command("total")
def item_total(
    item: str = typer.Argument(..., help="Item ID or code"),
    total: int = typer.Argument(..., help="New total copies"),
    admin_id: str = typer.Option(..., "--as", help="Administrator ID"),
) -> None:
    """Set an item's total copy count."""
    item_id = _resolve_item_id(item)
    updated = unwrap(_lending().adjust_catalog_total(item_id, total, admin_id))
    print_success(
        f"{updated.code}: {updated.available_copies}/{updated.total_copies} available"
    )


@item_app.command("delete")
def item_delete(
    item: str = typer.Argument(..., help="Item ID or code"),
    admin_id: str = typer.Option(..., "--as", help="Administrator ID"),
) -> None:
    """Delete an item with no open loans."""
    from .catalog import CatalogManager

    item_id = _resolve_item_id(item)
    unwrap(CatalogManager(get_db()).delete_item(item_id, admin_id))
    print_success("Item deleted")


# ============================================================================
# Loan Commands
# ============================================================================


@loan_app.command("borrow")
def loan_borrow(
    item: str = typer.Argument(..., help="Item ID or code"),
    patron: str = typer.Option(..., "--patron", "-p", help="Borrowing patron ID"),
    admin_id: Optional[str] = typer.Option(None, "--as", help="Borrow on the patron's behalf"),
) -> None:
    """Borrow one copy of an item."""
    item_id = _resolve_item_id(item)
    manager = _lending()
    if admin_id:
        receipt = unwrap(manager.borrow_for_patron(admin_id, patron, item_id))
    else:
        receipt = unwrap(manager.borrow(patron, item_id))
    print_success(f"Borrowed, due {receipt.due_at:%Y-%m-%d %H:%M}")
    console.print(f"Loan ID: {receipt.loan_id}")


@loan_app.command("return")
def loan_return(
    loan_id: str = typer.Argument(..., help="Loan ID"),
    patron: Optional[str] = typer.Option(None, "--patron", "-p", help="Returning patron ID"),
    admin_id: Optional[str] = typer.Option(None, "--as", help="Administrator override"),
) -> None:
    """Return a loan."""
    receipt = unwrap(_lending().return_loan(loan_id, patron_id=patron, admin_id=admin_id))
    if receipt.was_late:
        print_warning("Returned late")
    else:
        print_success("Returned on time")


@loan_app.command("renew")
def loan_renew(
    loan_id: str = typer.Argument(..., help="Loan ID"),
    patron: str = typer.Option(..., "--patron", "-p", help="Patron ID"),
) -> None:
    """Renew a loan."""
    receipt = unwrap(_lending().renew(loan_id, patron))
    print_success(f"Renewed, now due {receipt.new_due_at:%Y-%m-%d %H:%M}")
    console.print(f"[dim]Renewals remaining: {receipt.renewals_remaining}[/dim]")


@loan_app.command("extend")
def loan_extend(
    loan_id: str = typer.Argument(..., help="Loan ID"),
    due: str = typer.Argument(..., help="New due date (YYYY-MM-DD or ISO timestamp)"),
    admin_id: str = typer.Option(..., "--as", help="Administrator ID"),
) -> None:
    """Set a new due date for a loan."""
    try:
        new_due = datetime.fromisoformat(due)
    except ValueError:
        print_error(f"Invalid date: {due}")
        raise typer.Exit(1)

    loan = unwrap(_lending().extend_due_date(loan_id, new_due, admin_id))
    print_success(f"Due date set to {loan.due_at:%Y-%m-%d %H:%M}")


@loan_app.command("list")
def loan_list(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="BORROWED, OVERDUE or RETURNED"),
    patron: Optional[str] = typer.Option(None, "--patron", "-p", help="Patron ID"),
    overdue: bool = typer.Option(False, "--overdue", "-o", help="Only overdue loans"),
) -> None:
    """List loans."""
    from .loans import LoanStatus

    status_enum = None
    if status:
        try:
            status_enum = LoanStatus(status.upper())
        except ValueError:
            print_error(f"Invalid status: {status}")
            console.print(f"[dim]Valid: {', '.join(s.value for s in LoanStatus)}[/dim]")
            raise typer.Exit(1)

    loans = _lending().list_loans(status=status_enum, patron_id=patron, overdue_only=overdue)
    if not loans:
        console.print("[dim]No loans found[/dim]")
        return

    table = Table(title="Loans", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Patron", style="cyan")
    table.add_column("Item")
    table.add_column("Borrowed")
    table.add_column("Due")
    table.add_column("Renewed", justify="right")
    table.add_column("Status")

    for loan in loans:
        if loan.status == "OVERDUE":
            status_str = "[bold red]OVERDUE[/bold red]"
        elif loan.status == "RETURNED":
            status_str = f"[dim]RETURNED {_fmt(loan.returned_at)}[/dim]"
        else:
            status_str = "[green]BORROWED[/green]"
        table.add_row(
            loan.id,
            loan.patron_id,
            loan.item_id,
            _fmt(loan.borrowed_at),
            _fmt(loan.due_at),
            str(loan.renew_count),
            status_str,
        )
    console.print(table)


# ============================================================================
# Policy Commands
# ============================================================================


@policy_app.command("show")
def policy_show() -> None:
    """Show the lending policy."""
    from .policy import PolicyStore, PolicyValues

    policy = PolicyStore(get_db()).get()

    table = Table(title="Lending Policy", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", justify="right")
    table.add_column("Description", style="dim")
    for field, info in PolicyValues.model_fields.items():
        table.add_row(field, str(getattr(policy, field)), info.description or "")
    console.print(table)


@policy_app.command("set")
def policy_set(
    max_loans: Optional[int] = typer.Option(None, "--max-loans", help="Open loans per patron"),
    loan_days: Optional[int] = typer.Option(None, "--loan-days", help="Loan period in days"),
    fine: Optional[float] = typer.Option(None, "--fine", help="Fine per day overdue"),
    renewals: Optional[bool] = typer.Option(None, "--renewals/--no-renewals", help="Allow renewals"),
    max_renewals: Optional[int] = typer.Option(None, "--max-renewals", help="Renewals per loan"),
    admin_id: str = typer.Option(..., "--as", help="Administrator ID"),
) -> None:
    """Change the lending policy."""
    partial = {
        field: value
        for field, value in {
            "max_active_loans_per_patron": max_loans,
            "default_loan_days": loan_days,
            "fine_per_day": fine,
            "allow_renewals": renewals,
            "max_renewals": max_renewals,
        }.items()
        if value is not None
    }
    if not partial:
        print_warning("Nothing to update")
        return

    policy = unwrap(_lending().update_policy(partial, admin_id))
    print_success(
        f"Policy updated: {policy.max_active_loans_per_patron} loans, "
        f"{policy.default_loan_days} days, {policy.max_renewals} renewal(s)"
    )


# ============================================================================
# Reporting Commands
# ============================================================================


@app.command()
def sweep(
    watch: bool = typer.Option(False, "--watch", "-w", help="Keep sweeping on an interval"),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Seconds between sweeps"),
) -> None:
    """Mark lapsed loans as overdue."""
    from .errors import TransactionUnavailable
    from .lending import OverdueSweeper

    sweeper = OverdueSweeper(get_db())
    if watch:
        console.print("[dim]Sweeping until interrupted (Ctrl+C to stop)...[/dim]")
        try:
            total = sweeper.run_periodically(interval=interval)
        except KeyboardInterrupt:
            console.print("[dim]Stopped[/dim]")
            return
        print_success(f"{total} loan(s) marked overdue")
        return

    try:
        updated = sweeper.sweep()
    except TransactionUnavailable:
        print_error("UNAVAILABLE: Storage is busy, try again later")
        raise typer.Exit(1)
    print_success(f"{updated} loan(s) marked overdue")


@app.command()
def stats() -> None:
    """Show library statistics."""
    from .stats import StatsAggregator

    s = StatsAggregator(get_db()).get_stats()

    table = Table(title="Library Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Items", str(s.total_items))
    table.add_row("Copies", str(s.total_copies))
    table.add_row("Available copies", str(s.available_copies))
    table.add_row("Active loans", str(s.active_loans))
    table.add_row("Overdue loans", f"[red]{s.overdue_loans}[/red]" if s.overdue_loans else "0")
    table.add_row("Patrons", str(s.total_patrons))
    console.print(table)


@app.command()
def audit(
    action: Optional[str] = typer.Option(None, "--action", "-a", help="Filter by action"),
    actor: Optional[str] = typer.Option(None, "--actor", help="Filter by administrator"),
    limit: int = typer.Option(20, "--limit", "-l", help="Entries to show"),
) -> None:
    """Show recent administrator actions."""
    from .audit import AuditLog

    entries = AuditLog(get_db()).list_entries(
        actor_id=actor, action=action.upper() if action else None, limit=limit
    )
    if not entries:
        console.print("[dim]No audit entries[/dim]")
        return

    table = Table(title="Audit Log", show_header=True, header_style="bold magenta")
    table.add_column("When")
    table.add_column("Action", style="cyan")
    table.add_column("Actor", style="dim")
    table.add_column("Details")
    for entry in entries:
        details = ", ".join(f"{k}={v}" for k, v in entry.metadata.items())
        table.add_row(f"{entry.created_at:%Y-%m-%d %H:%M}", entry.action, entry.actor_id, details)
    console.print(table)


@app.command()
def check() -> None:
    """Check that copy counts agree with loan records."""
    from .integrity import IntegrityChecker

    report = IntegrityChecker(get_db()).check_all()
    console.print(f"[dim]Checked {report.item_count} items, {report.loan_count} loans[/dim]")

    for issue in report.issues:
        console.print(str(issue), markup=False)
        if issue.suggestion:
            console.print(f"[dim]  -> {issue.suggestion}[/dim]")

    if report.passed:
        print_success("No integrity problems found")
    else:
        print_error(f"{report.critical_count} critical, {report.error_count} error issue(s)")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
