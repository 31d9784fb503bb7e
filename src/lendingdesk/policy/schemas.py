"""Schemas for the lending policy."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PolicyValues(BaseModel):
    """A complete, valid policy."""

    max_active_loans_per_patron: int = Field(
        3, ge=1, le=100, description="Open loans a patron may hold at once"
    )
    default_loan_days: int = Field(
        14, ge=1, le=365, description="Loan period and renewal extension (days)"
    )
    fine_per_day: float = Field(
        0.0, ge=0, le=1000, description="Fine per day overdue (stored, not charged)"
    )
    allow_renewals: bool = Field(True, description="Whether patrons may renew loans")
    max_renewals: int = Field(1, ge=0, le=20, description="Renewals allowed per loan")


DEFAULT_POLICY = PolicyValues()


class PolicyUpdate(BaseModel):
    """Partial policy update; unset fields keep their current value."""

    max_active_loans_per_patron: Optional[int] = Field(None, ge=1, le=100)
    default_loan_days: Optional[int] = Field(None, ge=1, le=365)
    fine_per_day: Optional[float] = Field(None, ge=0, le=1000)
    allow_renewals: Optional[bool] = None
    max_renewals: Optional[int] = Field(None, ge=0, le=20)

    model_config = ConfigDict(extra="forbid")


class PolicyResponse(PolicyValues):
    """Schema for policy responses."""

    updated_at: datetime

    model_config = {"from_attributes": True}
