"""Library statistics for reporting.

All counts come from one SELECT of scalar subqueries, so they describe a
single snapshot of the database.
"""

from typing import Optional

from pydantic import BaseModel
from sqlalchemy import and_, func, or_, select

from ..catalog.models import Item
from ..db.models import to_iso, utc_now
from ..db.sqlite import Database, get_db
from ..loans.models import OPEN_STATUSES, Loan
from ..loans.schemas import LoanStatus
from ..patrons.models import Patron
from ..patrons.schemas import PatronRole
from ..service import Clock


class LibraryStats(BaseModel):
    """Overall library statistics."""

    total_items: int
    total_copies: int
    available_copies: int
    active_loans: int
    overdue_loans: int
    total_patrons: int

    @property
    def borrowed_copies(self) -> int:
        return self.total_copies - self.available_copies


class StatsAggregator:
    """Read-only aggregate view over items, loans and patrons."""

    def __init__(self, db: Optional[Database] = None, clock: Optional[Clock] = None):
        self.db = db or get_db()
        self.clock = clock or utc_now

    def get_stats(self) -> LibraryStats:
        """Get library statistics.

        Loans whose due date has passed count as overdue even before the
        sweeper has reclassified them.
        """
        now = to_iso(self.clock())

        def scalar(stmt):
            return stmt.scalar_subquery()

        stmt = select(
            scalar(select(func.count()).select_from(Item)).label("total_items"),
            scalar(select(func.coalesce(func.sum(Item.total_copies), 0))).label(
                "total_copies"
            ),
            scalar(select(func.coalesce(func.sum(Item.available_copies), 0))).label(
                "available_copies"
            ),
            scalar(
                select(func.count()).select_from(Loan).where(Loan.status.in_(OPEN_STATUSES))
            ).label("active_loans"),
            scalar(
                select(func.count()).select_from(Loan).where(
                    or_(
                        Loan.status == LoanStatus.OVERDUE.value,
                        and_(
                            Loan.status == LoanStatus.BORROWED.value,
                            Loan.due_at < now,
                        ),
                    )
                )
            ).label("overdue_loans"),
            scalar(
                select(func.count()).select_from(Patron).where(
                    Patron.role == PatronRole.PATRON.value
                )
            ).label("total_patrons"),
        )

        with self.db.read_session() as session:
            row = session.execute(stmt).one()

        return LibraryStats(**row._asdict())
