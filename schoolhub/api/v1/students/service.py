"""
Student directory: create, list, read, update, delete, bulk upload (JSON and Excel)
and bulk field update.

Every write that changes a student's seat goes through sections.service
reserve_seats / release_seats inside the same transaction as the student row.
"""

import io
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import UploadFile, status
from openpyxl import load_workbook
from pydantic import ValidationError
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.api.v1.activity_logs.service import log_activity
from schoolhub.api.v1.sections import service as section_service
from schoolhub.auth.models import User
from schoolhub.auth.schemas import CurrentUser
from schoolhub.auth.services import create_user, get_user_by_email
from schoolhub.core.config import settings
from schoolhub.core.enums import TERMINAL_STUDENT_STATUSES, StudentStatus, UserRole
from schoolhub.core.exceptions import ServiceError
from schoolhub.core.models import SchoolClass, Student
from schoolhub.core.schemas import Pagination
from schoolhub.db.session import utcnow

from .schemas import (
    StudentBulkFailureItem,
    StudentBulkResponse,
    StudentBulkUpdate,
    StudentBulkUpdateResponse,
    StudentCreate,
    StudentListResponse,
    StudentResponse,
    StudentUpdate,
)

logger = logging.getLogger(__name__)

MODULE = "STUDENT"

# Fields bulk update may never touch (identity, login email, placement and lifecycle state)
BULK_UPDATE_FORBIDDEN_FIELDS = (
    "admission_number",
    "user_id",
    "id",
    "created_at",
    "email",
    "status",
    "class_id",
    "section_id",
)


def full_name(student: Student) -> str:
    return f"{student.first_name} {student.last_name}"


async def _admission_number_exists(db: AsyncSession, admission_number: str) -> bool:
    r = await db.execute(select(Student.id).where(Student.admission_number == admission_number).limit(1))
    return r.scalar_one_or_none() is not None


async def validate_placement(db: AsyncSession, class_id: UUID, section_id: UUID) -> bool:
    """True when the class exists and the section belongs to it."""
    if not await db.get(SchoolClass, class_id):
        return False
    return await section_service.get_section_in_class(db, section_id, class_id) is not None


async def _add_student(db: AsyncSession, payload: StudentCreate) -> Student:
    """
    Validate and stage one student (login account, seat, profile). Flushes but does not
    commit; raises ServiceError before any write when a check fails.
    """
    admission_number = payload.admission_number.strip()
    if await _admission_number_exists(db, admission_number):
        raise ServiceError("Admission number already exists", status.HTTP_400_BAD_REQUEST)
    if await get_user_by_email(db, payload.email):
        raise ServiceError("Email already exists", status.HTTP_400_BAD_REQUEST)
    if not await validate_placement(db, payload.class_id, payload.section_id):
        raise ServiceError("Invalid class or section", status.HTTP_400_BAD_REQUEST)

    if not await section_service.reserve_seats(db, payload.section_id, 1):
        logger.warning("Section %s is full; student %s not created", payload.section_id, admission_number)
        raise ServiceError("Section is full", status.HTTP_400_BAD_REQUEST)

    user = await create_user(db, payload.email, payload.password, UserRole.STUDENT.value)
    student = Student(
        user_id=user.id,
        admission_number=admission_number,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        date_of_birth=payload.date_of_birth,
        gender=payload.gender.value,
        blood_group=payload.blood_group,
        religion=payload.religion,
        nationality=payload.nationality,
        address=payload.address,
        phone=payload.phone,
        email=user.email,
        class_id=payload.class_id,
        section_id=payload.section_id,
        roll_number=payload.roll_number,
        admission_date=payload.admission_date,
        parent_ids=list(payload.parent_ids),
        medical_info=payload.medical_info.model_dump() if payload.medical_info else None,
        previous_school=payload.previous_school,
        status=StudentStatus.ACTIVE.value,
    )
    db.add(student)
    await db.flush()
    return student


async def create_student(
    db: AsyncSession,
    payload: StudentCreate,
    performed_by: CurrentUser,
    ip_address: Optional[str] = None,
) -> StudentResponse:
    try:
        student = await _add_student(db, payload)
        log_activity(
            db,
            user_id=performed_by.id,
            user_role=performed_by.role,
            action="CREATE",
            module=MODULE,
            description=f"Created student: {full_name(student)}",
            ip_address=ip_address,
        )
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise
    except IntegrityError as e:
        # Lost a race with a concurrent create using the same admission number or email
        await db.rollback()
        raise ServiceError("Admission number or email already exists", status.HTTP_400_BAD_REQUEST) from e
    await db.refresh(student)
    logger.info("Student %s created in section %s", student.id, student.section_id)
    return StudentResponse.model_validate(student)


async def list_students(
    db: AsyncSession,
    *,
    class_id: Optional[UUID] = None,
    section_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> StudentListResponse:
    """Filtered, newest-first page of students."""
    conditions = []
    if class_id is not None:
        conditions.append(Student.class_id == class_id)
    if section_id is not None:
        conditions.append(Student.section_id == section_id)
    if status_filter:
        conditions.append(Student.status == status_filter)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                Student.first_name.ilike(pattern),
                Student.last_name.ilike(pattern),
                Student.admission_number.ilike(pattern),
            )
        )

    total = (await db.execute(select(func.count(Student.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(Student)
        .where(*conditions)
        .order_by(Student.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return StudentListResponse(
        students=[StudentResponse.model_validate(s) for s in result.scalars().all()],
        pagination=Pagination.build(total, page, limit),
    )


async def get_student(db: AsyncSession, student_id: UUID) -> StudentResponse:
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    return StudentResponse.model_validate(student)


async def update_student(
    db: AsyncSession,
    student_id: UUID,
    payload: StudentUpdate,
    performed_by: CurrentUser,
    ip_address: Optional[str] = None,
) -> StudentResponse:
    """
    Partial update. Seat bookkeeping:
    - active student moving section: reserve new, release old
    - active -> inactive: release; inactive -> active: reserve
    graduated / transferred students cannot change status.
    """
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)

    data = payload.model_dump(exclude_unset=True)
    new_status = data.pop("status", None)
    new_status = new_status.value if new_status is not None else student.status
    if new_status != student.status:
        if student.status in TERMINAL_STUDENT_STATUSES:
            raise ServiceError(
                f"Cannot change status of a {student.status} student", status.HTTP_400_BAD_REQUEST
            )
        if new_status in TERMINAL_STUDENT_STATUSES:
            raise ServiceError(
                f"Use the {'graduate' if new_status == StudentStatus.GRADUATED.value else 'transfer'} "
                f"operation to mark a student {new_status}",
                status.HTTP_400_BAD_REQUEST,
            )

    new_class_id = data.pop("class_id", None) or student.class_id
    new_section_id = data.pop("section_id", None) or student.section_id
    placement_changed = new_class_id != student.class_id or new_section_id != student.section_id
    if placement_changed and not await validate_placement(db, new_class_id, new_section_id):
        raise ServiceError("Invalid class or section", status.HTTP_400_BAD_REQUEST)

    new_email = data.pop("email", None)
    email_changed = new_email is not None and new_email.lower() != (student.email or "").lower()
    if email_changed:
        existing = await get_user_by_email(db, new_email)
        if existing and existing.id != student.user_id:
            raise ServiceError("Email already exists", status.HTTP_400_BAD_REQUEST)
        student.email = new_email.lower()
        if student.user_id:
            user = await db.get(User, student.user_id)
            if user:
                user.email = new_email.lower()

    was_active = student.status == StudentStatus.ACTIVE.value
    will_be_active = new_status == StudentStatus.ACTIVE.value
    section_changed = new_section_id != student.section_id
    try:
        if will_be_active and (not was_active or section_changed):
            if not await section_service.reserve_seats(db, new_section_id, 1):
                logger.warning("Section %s is full; update of student %s rejected", new_section_id, student_id)
                raise ServiceError("Section is full", status.HTTP_400_BAD_REQUEST)
        if was_active and (not will_be_active or section_changed):
            await section_service.release_seats(db, student.section_id, 1)

        for field, value in data.items():
            if field == "gender" and value is not None:
                value = value.value
            setattr(student, field, value)
        student.class_id = new_class_id
        student.section_id = new_section_id
        student.status = new_status

        log_activity(
            db,
            user_id=performed_by.id,
            user_role=performed_by.role,
            action="UPDATE",
            module=MODULE,
            description=f"Updated student: {full_name(student)}",
            ip_address=ip_address,
        )
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        if email_changed:
            raise ServiceError("Email already exists", status.HTTP_400_BAD_REQUEST) from e
        raise
    await db.refresh(student)
    return StudentResponse.model_validate(student)


async def delete_student(
    db: AsyncSession,
    student_id: UUID,
    performed_by: CurrentUser,
    ip_address: Optional[str] = None,
) -> None:
    """Release the seat (active students only), delete the login account and the student."""
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)

    if student.status == StudentStatus.ACTIVE.value:
        await section_service.release_seats(db, student.section_id, 1)
    user_id = student.user_id
    name = full_name(student)
    await db.delete(student)
    await db.flush()
    if user_id:
        user = await db.get(User, user_id)
        if user:
            await db.delete(user)
    log_activity(
        db,
        user_id=performed_by.id,
        user_role=performed_by.role,
        action="DELETE",
        module=MODULE,
        description=f"Deleted student: {name}",
        ip_address=ip_address,
    )
    await db.commit()
    logger.info("Student %s deleted", student_id)


# ----- bulk upload -----

async def create_students_bulk(
    db: AsyncSession,
    items: List[Tuple[int, StudentCreate]],
    performed_by: CurrentUser,
    failed: Optional[List[StudentBulkFailureItem]] = None,
    ip_address: Optional[str] = None,
) -> StudentBulkResponse:
    """
    Continue-on-error creation. Each row runs in its own savepoint so a failing row
    leaves no partial writes; failures are collected with a reason, never raised.
    `failed` may carry rows that were already rejected while parsing.
    """
    failed = list(failed or [])
    if len(items) + len(failed) > settings.bulk_max_rows:
        raise ServiceError(
            f"Maximum {settings.bulk_max_rows} students per upload", status.HTTP_400_BAD_REQUEST
        )

    created: List[Student] = []

    # Rows created earlier in this upload are flushed, so the duplicate checks in
    # _add_student also catch repeats within the same file.
    for index, item in items:
        admission_number = item.admission_number.strip()
        reason = None
        try:
            async with db.begin_nested():
                created.append(await _add_student(db, item))
        except ServiceError as e:
            reason = e.message
        except IntegrityError:
            reason = "Admission number or email already exists"
        if reason:
            logger.warning("Bulk upload row %s (%s) failed: %s", index, admission_number, reason)
            failed.append(
                StudentBulkFailureItem(
                    index=index,
                    admission_number=admission_number,
                    email=item.email,
                    reason=reason,
                )
            )

    failed.sort(key=lambda f: f.index)
    log_activity(
        db,
        user_id=performed_by.id,
        user_role=performed_by.role,
        action="BULK_UPLOAD",
        module=MODULE,
        description=f"Bulk uploaded {len(created)} students ({len(failed)} failed)",
        ip_address=ip_address,
        metadata={"successful": len(created), "failed": len(failed)},
    )
    await db.commit()
    logger.info("Bulk upload finished: %s created, %s failed", len(created), len(failed))
    return StudentBulkResponse(
        message=f"{len(created)} students uploaded successfully",
        successful=[StudentResponse.model_validate(s) for s in created],
        failed=failed,
    )


EXCEL_REQUIRED_HEADERS = (
    "admission_number",
    "email",
    "password",
    "first_name",
    "last_name",
    "date_of_birth",
    "gender",
    "nationality",
    "address",
    "class_id",
    "section_id",
    "roll_number",
    "admission_date",
)
EXCEL_OPTIONAL_HEADERS = ("blood_group", "religion", "phone", "previous_school", "parent_ids")


def _norm(s: Any) -> str:
    return (str(s).strip().lower() if s is not None else "").replace(" ", "_")


def _validation_message(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def _cell_value(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    text = str(v).strip()
    return text or None


async def parse_students_excel(
    file: UploadFile,
) -> Tuple[List[Tuple[int, StudentCreate]], List[StudentBulkFailureItem]]:
    """
    Read the first sheet of an .xlsx upload. Row 1 names the fields.
    Returns (rows that parsed, rows that failed to parse). Raises ValueError for an unusable file.
    """
    if not file.filename or not file.filename.lower().endswith(".xlsx"):
        raise ValueError("File must be an Excel file (.xlsx)")
    content = await file.read()
    if not content:
        raise ValueError("File is empty")
    try:
        wb = load_workbook(filename=io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValueError(f"Invalid Excel file: {e}") from e

    try:
        ws = wb.active
        rows_iter = ws.iter_rows(values_only=True)
        header_row = next(rows_iter, None)
        if not header_row:
            raise ValueError("Excel file has no header row")
        headers = [_norm(c) for c in header_row]
        missing = [h for h in EXCEL_REQUIRED_HEADERS if h not in headers]
        if missing:
            raise ValueError(f"Missing required column(s): {', '.join(missing)}")

        parsed: List[Tuple[int, StudentCreate]] = []
        failed: List[StudentBulkFailureItem] = []
        index = -1
        for row in rows_iter:
            if not row or all(_cell_value(c) is None for c in row):
                continue
            index += 1
            row_data: Dict[str, Any] = {}
            for i, h in enumerate(headers):
                if h in EXCEL_REQUIRED_HEADERS or h in EXCEL_OPTIONAL_HEADERS:
                    row_data[h] = _cell_value(row[i]) if i < len(row) else None
            if isinstance(row_data.get("gender"), str):
                row_data["gender"] = row_data["gender"].lower()
            parents = row_data.pop("parent_ids", None)
            if parents:
                row_data["parent_ids"] = [p.strip() for p in str(parents).split(",") if p.strip()]
            row_data = {k: v for k, v in row_data.items() if v is not None}
            try:
                parsed.append((index, StudentCreate(**row_data)))
            except ValidationError as e:
                reason = _validation_message(e)
                failed.append(
                    StudentBulkFailureItem(
                        index=index,
                        admission_number=str(row_data.get("admission_number") or "") or None,
                        email=str(row_data.get("email") or "") or None,
                        reason=reason,
                    )
                )
    finally:
        wb.close()
    return parsed, failed


# ----- bulk update -----

def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


async def bulk_update_students(
    db: AsyncSession,
    payload: StudentBulkUpdate,
    performed_by: CurrentUser,
    ip_address: Optional[str] = None,
) -> StudentBulkUpdateResponse:
    """Apply the same field values to many students. Identity, login email, placement and status are off limits."""
    for field in payload.updates:
        if field in BULK_UPDATE_FORBIDDEN_FIELDS or field not in StudentUpdate.model_fields:
            raise ServiceError(f"Cannot update field: {field}", status.HTTP_400_BAD_REQUEST)
    try:
        validated = StudentUpdate(**payload.updates)
    except ValidationError as e:
        raise ServiceError(_validation_message(e), status.HTTP_400_BAD_REQUEST) from e
    values = {k: _plain(v) for k, v in validated.model_dump(exclude_unset=True).items()}

    try:
        result = await db.execute(
            update(Student)
            .where(Student.id.in_(payload.student_ids))
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("Invalid value for bulk update", status.HTTP_400_BAD_REQUEST) from e
    modified = result.rowcount or 0
    log_activity(
        db,
        user_id=performed_by.id,
        user_role=performed_by.role,
        action="BULK_UPDATE",
        module=MODULE,
        description=f"Bulk updated {modified} students",
        ip_address=ip_address,
        metadata={"fields": sorted(values.keys())},
    )
    await db.commit()
    return StudentBulkUpdateResponse(message=f"{modified} students updated successfully", modified_count=modified)
