from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator

from schoolhub.core.enums import Gender, StudentStatus
from schoolhub.core.schemas import Pagination

# NOT NULL columns of students that a partial update may omit but never set to null
STUDENT_REQUIRED_FIELDS = frozenset(
    {
        "first_name",
        "last_name",
        "date_of_birth",
        "gender",
        "nationality",
        "address",
        "email",
        "class_id",
        "section_id",
        "roll_number",
        "parent_ids",
        "status",
    }
)


class MedicalInfo(BaseModel):
    allergies: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    conditions: List[str] = Field(default_factory=list)


class StudentCreate(BaseModel):
    """Creates the login account (role student) and the student profile."""

    admission_number: str = Field(..., min_length=1, max_length=50)
    email: EmailStr = Field(..., description="Login email for the student account")
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    date_of_birth: date
    gender: Gender
    blood_group: Optional[str] = Field(None, max_length=10)
    religion: Optional[str] = Field(None, max_length=50)
    nationality: str = Field(..., min_length=1, max_length=100)
    address: str = Field(..., min_length=1)
    phone: Optional[str] = Field(None, max_length=50)
    class_id: UUID
    section_id: UUID
    roll_number: int = Field(..., ge=1)
    admission_date: date
    parent_ids: List[str] = Field(default_factory=list)
    medical_info: Optional[MedicalInfo] = None
    previous_school: Optional[str] = Field(None, max_length=255)


class StudentUpdate(BaseModel):
    """Partial update. admission_number and the user link are not editable."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    blood_group: Optional[str] = Field(None, max_length=10)
    religion: Optional[str] = Field(None, max_length=50)
    nationality: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    class_id: Optional[UUID] = None
    section_id: Optional[UUID] = None
    roll_number: Optional[int] = Field(None, ge=1)
    parent_ids: Optional[List[str]] = None
    medical_info: Optional[MedicalInfo] = None
    previous_school: Optional[str] = Field(None, max_length=255)
    status: Optional[StudentStatus] = None

    @model_validator(mode="after")
    def _no_null_for_required_columns(self) -> "StudentUpdate":
        # Optional means "may be omitted"; these columns can never be cleared
        for field in sorted(STUDENT_REQUIRED_FIELDS & self.model_fields_set):
            if getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class StudentResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    admission_number: str
    first_name: str
    last_name: str
    date_of_birth: date
    gender: str
    blood_group: Optional[str] = None
    religion: Optional[str] = None
    nationality: str
    address: str
    phone: Optional[str] = None
    email: Optional[str] = None
    class_id: UUID
    section_id: UUID
    roll_number: int
    admission_date: date
    parent_ids: List[str] = Field(default_factory=list)
    medical_info: Optional[Dict[str, Any]] = None
    previous_school: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StudentEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    student: StudentResponse


class StudentListResponse(BaseModel):
    success: bool = True
    students: List[StudentResponse]
    pagination: Pagination


# ----- bulk upload / update -----

class StudentBulkCreate(BaseModel):
    students: List[StudentCreate] = Field(..., min_length=1)


class StudentBulkFailureItem(BaseModel):
    """One row that could not be created: the submitted data (password hidden) and why."""

    index: int = Field(..., description="0-based position in the upload")
    admission_number: Optional[str] = None
    email: Optional[str] = None
    reason: str


class StudentBulkResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    successful: List[StudentResponse] = Field(default_factory=list)
    failed: List[StudentBulkFailureItem] = Field(default_factory=list)


class StudentBulkUpdate(BaseModel):
    student_ids: List[UUID] = Field(..., min_length=1)
    updates: Dict[str, Any] = Field(..., min_length=1)


class StudentBulkUpdateResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    modified_count: int


# ----- lifecycle -----

class StudentPromote(BaseModel):
    new_class_id: UUID
    new_section_id: UUID
    new_roll_number: int = Field(..., ge=1)


class StudentBulkPromote(BaseModel):
    from_class_id: UUID
    from_section_id: Optional[UUID] = None
    to_class_id: UUID
    to_section_id: UUID
    academic_year_id: Optional[UUID] = None
    student_ids: Optional[List[UUID]] = Field(
        None, description="Promote only these students of the source cohort; all active students when omitted"
    )


class PromotionSuccessItem(BaseModel):
    student_id: UUID
    admission_number: str
    name: str
    new_class: str
    new_section: str
    new_roll_number: int


class LifecycleFailureItem(BaseModel):
    student_id: UUID
    admission_number: str
    name: str
    reason: str


class BulkPromoteResults(BaseModel):
    successful: List[PromotionSuccessItem] = Field(default_factory=list)
    failed: List[LifecycleFailureItem] = Field(default_factory=list)


class StudentBulkPromoteResult(BaseModel):
    success: bool = True
    message: str
    results: BulkPromoteResults


class GraduateStudentsRequest(BaseModel):
    student_ids: Optional[List[UUID]] = None
    class_id: Optional[UUID] = None
    section_id: Optional[UUID] = None


class GraduatedItem(BaseModel):
    student_id: UUID
    name: str
    admission_number: str


class GraduateStudentsResult(BaseModel):
    success: bool = True
    message: str
    graduated: List[GraduatedItem] = Field(default_factory=list)
    failed: List[LifecycleFailureItem] = Field(default_factory=list)


class StudentTransfer(BaseModel):
    transfer_school: str = Field(..., min_length=1, max_length=255)
    transfer_date: Optional[date] = None
    reason: Optional[str] = None


class PreviewTargetSection(BaseModel):
    id: UUID
    name: str
    class_name: Optional[str] = None
    capacity: int
    current_strength: int
    available_capacity: int


class PreviewStudent(BaseModel):
    id: UUID
    admission_number: str
    first_name: str
    last_name: str
    roll_number: int

    class Config:
        from_attributes = True


class PromotionPreview(BaseModel):
    total_students: int
    target_section: PreviewTargetSection
    can_promote_all: bool
    students: List[PreviewStudent]


class PromotionPreviewResponse(BaseModel):
    success: bool = True
    preview: PromotionPreview
