from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50, description="e.g. Grade 5")
    level: int = Field(..., ge=0, description="Ordering key; promotion normally goes to level + 1")
    capacity: int = Field(..., ge=1)
    academic_year_id: UUID
    class_teacher_id: Optional[UUID] = None


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    level: Optional[int] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=1)


class AssignClassTeacher(BaseModel):
    teacher_id: UUID


class ClassResponse(BaseModel):
    id: UUID
    name: str
    level: int
    capacity: int
    academic_year_id: UUID
    class_teacher_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
