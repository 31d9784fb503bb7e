"""Database model for the lending policy (a single row)."""

from sqlalchemy import Boolean, CheckConstraint, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db.models import Base, now_iso

POLICY_ROW_ID = 1


class Policy(Base):
    """The active lending policy."""

    __tablename__ = "policy"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=POLICY_ROW_ID)
    max_active_loans_per_patron: Mapped[int] = mapped_column(Integer, nullable=False)
    default_loan_days: Mapped[int] = mapped_column(Integer, nullable=False)
    fine_per_day: Mapped[float] = mapped_column(Float, nullable=False)
    allow_renewals: Mapped[bool] = mapped_column(Boolean, nullable=False)
    max_renewals: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[str] = mapped_column(String(32), default=now_iso, onupdate=now_iso)

    __table_args__ = (CheckConstraint(f"id = {POLICY_ROW_ID}", name="ck_policy_singleton"),)

    def __repr__(self) -> str:
        return (
            f"<Policy(max_loans={self.max_active_loans_per_patron}, "
            f"loan_days={self.default_loan_days}, max_renewals={self.max_renewals})>"
        )
