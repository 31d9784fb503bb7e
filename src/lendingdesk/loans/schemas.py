"""Pydantic schemas for loans."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class LoanStatus(str, Enum):
    """Status of a loan."""

    BORROWED = "BORROWED"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"


class LoanResponse(BaseModel):
    """Schema for loan responses."""

    id: str
    patron_id: str
    item_id: str
    status: LoanStatus
    borrowed_at: datetime
    due_at: datetime
    returned_at: Optional[datetime]
    renew_count: int
    created_by: Optional[str]

    model_config = {"from_attributes": True}


class BorrowReceipt(BaseModel):
    """Result of a successful borrow."""

    loan_id: str
    due_at: datetime


class ReturnReceipt(BaseModel):
    """Result of a successful return."""

    loan_id: str
    returned_at: datetime
    was_late: bool


class RenewReceipt(BaseModel):
    """Result of a successful renewal."""

    loan_id: str
    new_due_at: datetime
    renewals_remaining: int
