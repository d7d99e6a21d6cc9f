from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AcademicYearCreate(BaseModel):
    """Create academic year. name must be unique."""

    name: str = Field(..., min_length=1, max_length=50, description="e.g. 2024-2025")
    start_date: date
    end_date: date = Field(..., description="Must be after start_date")
    is_current: bool = Field(False, description="If true, every other year stops being current")


class AcademicYearUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_current: Optional[bool] = None


class AcademicYearResponse(BaseModel):
    id: UUID
    name: str
    start_date: date
    end_date: date
    is_current: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
