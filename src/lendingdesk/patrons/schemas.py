"""Pydantic schemas for patrons."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PatronRole(str, Enum):
    """Role of a patron."""

    PATRON = "patron"
    ADMIN = "admin"


class PatronCreate(BaseModel):
    """Schema for registering a patron."""

    full_name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, max_length=200)
    registered_number: Optional[str] = Field(None, min_length=1, max_length=50)
    role: PatronRole = PatronRole.PATRON


class PatronResponse(BaseModel):
    """Schema for patron responses."""

    id: str
    full_name: str
    email: Optional[str]
    registered_number: Optional[str]
    role: PatronRole
    created_at: datetime

    model_config = {"from_attributes": True}
