from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SectionCreate(BaseModel):
    class_id: UUID = Field(..., description="Class this section belongs to")
    name: str = Field(..., min_length=1, max_length=50)
    capacity: int = Field(40, ge=1, description="Max active students in this section")
    class_teacher_id: Optional[UUID] = None
    room: Optional[str] = Field(None, max_length=50)


class SectionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    capacity: Optional[int] = Field(None, ge=1)
    class_teacher_id: Optional[UUID] = None
    room: Optional[str] = Field(None, max_length=50)


class SectionResponse(BaseModel):
    id: UUID
    class_id: UUID
    name: str
    capacity: int
    current_strength: int = Field(..., description="Active students currently holding a seat")
    available_capacity: int
    class_teacher_id: Optional[UUID] = None
    room: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
