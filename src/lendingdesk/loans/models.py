"""SQLAlchemy models for loans.

Tables:
- loans: One patron's borrowing of one copy of one item
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, from_iso, generate_uuid, now_iso, to_iso
from .schemas import LoanStatus

if TYPE_CHECKING:
    from ..catalog.models import Item
    from ..patrons.models import Patron

OPEN_STATUSES = (LoanStatus.BORROWED.value, LoanStatus.OVERDUE.value)


class Loan(Base):
    """Loan model - tracks one copy from borrow to return."""

    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    patron_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("patrons.id"),
        nullable=False,
        index=True,
    )
    item_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LoanStatus.BORROWED.value, index=True
    )
    borrowed_at: Mapped[str] = mapped_column(String(32), nullable=False)
    due_at: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    returned_at: Mapped[Optional[str]] = mapped_column(String(32))
    renew_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Administrator who borrowed on the patron's behalf (None for self-service)
    created_by: Mapped[Optional[str]] = mapped_column(String(36))

    created_at: Mapped[str] = mapped_column(String(32), default=now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    item: Mapped["Item"] = relationship("Item", back_populates="loans")
    patron: Mapped["Patron"] = relationship("Patron", back_populates="loans")

    __table_args__ = (
        CheckConstraint("renew_count >= 0", name="ck_loans_renew_count_nonnegative"),
        CheckConstraint(
            "status IN ('BORROWED', 'OVERDUE', 'RETURNED')", name="ck_loans_status"
        ),
        # One open loan per patron and item
        Index(
            "uq_loans_open_patron_item",
            "patron_id",
            "item_id",
            unique=True,
            sqlite_where=text("status != 'RETURNED'"),
            postgresql_where=text("status != 'RETURNED'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Loan(id={self.id}, item_id={self.item_id}, status={self.status})>"

    @property
    def is_open(self) -> bool:
        return self.status != LoanStatus.RETURNED.value

    @property
    def due_datetime(self) -> datetime:
        return from_iso(self.due_at)

    @property
    def borrowed_datetime(self) -> datetime:
        return from_iso(self.borrowed_at)

    @property
    def returned_datetime(self) -> Optional[datetime]:
        return from_iso(self.returned_at)

    def is_past_due(self, now: datetime) -> bool:
        """Check if the due date lies before ``now`` on an open loan."""
        return self.is_open and self.due_at < to_iso(now)

    def days_overdue(self, now: datetime) -> int:
        """Whole days past due (0 if not overdue)."""
        if not self.is_past_due(now):
            return 0
        return (now - self.due_datetime).days
