"""Pydantic schemas for catalog items."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ItemBase(BaseModel):
    """Base item fields."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field("", max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    image_url: Optional[str] = None


class ItemCreate(ItemBase):
    """Schema for creating an item."""

    code: str = Field(..., min_length=1, max_length=100)
    total_copies: int = Field(1, ge=1)


class ItemUpdate(BaseModel):
    """Schema for updating an item. The code cannot be changed."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    author: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    image_url: Optional[str] = None
    active: Optional[bool] = None
    total_copies: Optional[int] = Field(None, ge=1)

    model_config = ConfigDict(extra="forbid")


class ItemResponse(ItemBase):
    """Schema for item responses."""

    id: str
    code: str
    total_copies: int
    available_copies: int
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BulkItemRow(ItemBase):
    """One already-parsed row of a bulk catalog upload."""

    code: str = Field(..., min_length=1, max_length=100)
    total_copies: Optional[int] = Field(None, ge=1)


class BulkUpsertResult(BaseModel):
    """Counts from a bulk catalog upload."""

    inserted: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.inserted + self.updated + self.failed
