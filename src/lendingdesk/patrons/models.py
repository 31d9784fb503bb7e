"""SQLAlchemy models for patrons."""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..db.models import Base, generate_uuid, now_iso

if TYPE_CHECKING:
    from ..loans.models import Loan


class Patron(Base):
    """Patron model - a registered borrower or administrator."""

    __tablename__ = "patrons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(200))
    registered_number: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="patron", index=True)

    created_at: Mapped[str] = mapped_column(String(32), default=now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    loans: Mapped[list["Loan"]] = relationship("Loan", back_populates="patron")

    def __repr__(self) -> str:
        return f"<Patron(id={self.id}, name='{self.full_name}', role={self.role})>"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
