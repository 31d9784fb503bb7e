"""SQLAlchemy models for the item catalog.

Tables:
- items: Lendable catalog entries with copy counts
"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, generate_uuid, now_iso

if TYPE_CHECKING:
    from ..loans.models import Loan


class Item(Base):
    """Item model - one catalog entry with N identical copies."""

    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # External code, immutable after creation
    code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)

    # Descriptive fields
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text)

    # Copy accounting
    total_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    available_copies: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    # Relationships
    loans: Mapped[list["Loan"]] = relationship(
        "Loan", back_populates="item", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="ck_items_total_positive"),
        CheckConstraint("available_copies >= 0", name="ck_items_available_nonnegative"),
        CheckConstraint(
            "available_copies <= total_copies", name="ck_items_available_le_total"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Item(id={self.id}, code='{self.code}', "
            f"available={self.available_copies}/{self.total_copies})>"
        )

    @property
    def borrowed_copies(self) -> int:
        """Copies currently out on loan according to the counters."""
        return self.total_copies - self.available_copies
