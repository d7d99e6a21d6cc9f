"""
Student lifecycle transitions: promotion (single and bulk), graduation, transfer
and the read-only promotion preview.

Seat accounting:
- a promotion takes a seat in the destination section through a conditional
  UPDATE before the old one is released, so a full section rejects the move
  without touching either counter;
- graduation and transfer release the seat of an active student;
- each single-student operation commits once, so counter and student change
  together or not at all.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.api.v1.activity_logs.service import log_activity
from schoolhub.api.v1.notifications.service import notify
from schoolhub.api.v1.sections import service as section_service
from schoolhub.auth.models import User
from schoolhub.auth.schemas import CurrentUser
from schoolhub.core.enums import NotificationType, StudentStatus
from schoolhub.core.exceptions import ServiceError
from schoolhub.core.models import SchoolClass, Section, Student

from .schemas import (
    BulkPromoteResults,
    GraduatedItem,
    GraduateStudentsRequest,
    GraduateStudentsResult,
    LifecycleFailureItem,
    PreviewStudent,
    PreviewTargetSection,
    PromotionPreview,
    PromotionPreviewResponse,
    PromotionSuccessItem,
    StudentBulkPromote,
    StudentBulkPromoteResult,
    StudentPromote,
    StudentResponse,
    StudentTransfer,
)
from .service import MODULE, full_name, validate_placement

logger = logging.getLogger(__name__)

PROMOTION_TITLE = "Class Promotion"
GRADUATION_TITLE = "Congratulations!"
GRADUATION_MESSAGE = "You have successfully graduated!"
TRANSFER_TITLE = "Transfer Notification"


def _promotion_message(class_name: str) -> str:
    return f"Congratulations! You have been promoted to {class_name}"


async def promote_student(
    db: AsyncSession,
    student_id: UUID,
    payload: StudentPromote,
    performed_by: CurrentUser,
    ip_address: Optional[str] = None,
) -> StudentResponse:
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    if not await validate_placement(db, payload.new_class_id, payload.new_section_id):
        raise ServiceError("Invalid class or section", status.HTTP_400_BAD_REQUEST)
    if student.status != StudentStatus.ACTIVE.value:
        raise ServiceError("Only active students can be promoted", status.HTTP_400_BAD_REQUEST)

    new_class = await db.get(SchoolClass, payload.new_class_id)
    old_class_id, old_section_id = student.class_id, student.section_id

    try:
        if payload.new_section_id != old_section_id:
            if not await section_service.reserve_seats(db, payload.new_section_id, 1):
                logger.warning(
                    "Promotion of student %s rejected: section %s is full", student_id, payload.new_section_id
                )
                raise ServiceError("New section is full", status.HTTP_400_BAD_REQUEST)
            await section_service.release_seats(db, old_section_id, 1)

        student.class_id = payload.new_class_id
        student.section_id = payload.new_section_id
        student.roll_number = payload.new_roll_number

        notify(
            db,
            student.user_id,
            PROMOTION_TITLE,
            _promotion_message(new_class.name),
            NotificationType.SUCCESS,
        )
        log_activity(
            db,
            user_id=performed_by.id,
            user_role=performed_by.role,
            action="PROMOTE",
            module=MODULE,
            description=f"Promoted student {full_name(student)} to {new_class.name}",
            ip_address=ip_address,
            metadata={
                "from_class_id": str(old_class_id),
                "from_section_id": str(old_section_id),
                "to_class_id": str(payload.new_class_id),
                "to_section_id": str(payload.new_section_id),
            },
        )
        await db.commit()
    except ServiceError:
        await db.rollback()
        raise
    await db.refresh(student)
    logger.info("Student %s promoted from section %s to %s", student_id, old_section_id, student.section_id)
    return StudentResponse.model_validate(student)


async def _select_cohort(
    db: AsyncSession,
    class_id: UUID,
    section_id: Optional[UUID] = None,
    student_ids: Optional[List[UUID]] = None,
) -> List[Student]:
    """Active students of a class (optionally one section, optionally a subset by id) in roll order."""
    stmt = select(Student).where(
        Student.class_id == class_id,
        Student.status == StudentStatus.ACTIVE.value,
    )
    if section_id is not None:
        stmt = stmt.where(Student.section_id == section_id)
    if student_ids:
        stmt = stmt.where(Student.id.in_(student_ids))
    stmt = stmt.order_by(Student.roll_number, Student.last_name, Student.first_name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def bulk_promote_students(
    db: AsyncSession,
    payload: StudentBulkPromote,
    performed_by: CurrentUser,
    ip_address: Optional[str] = None,
) -> StudentBulkPromoteResult:
    """
    Promote a cohort into one target section.

    The capacity check happens before any write. The whole cohort's seats are then
    reserved in one compare-and-swap against the strength that was read, and roll
    numbers continue from that strength. Students are moved one savepoint at a
    time; seats held for students that failed are handed back at the end.
    """
    from_class = await db.get(SchoolClass, payload.from_class_id)
    to_class = await db.get(SchoolClass, payload.to_class_id)
    to_section = await section_service.get_section_in_class(db, payload.to_section_id, payload.to_class_id)
    if not from_class or not to_class or not to_section:
        raise ServiceError("Invalid class or section", status.HTTP_400_BAD_REQUEST)
    if payload.from_section_id is not None and not await section_service.get_section_in_class(
        db, payload.from_section_id, payload.from_class_id
    ):
        raise ServiceError("Invalid class or section", status.HTTP_400_BAD_REQUEST)

    students = await _select_cohort(db, payload.from_class_id, payload.from_section_id, payload.student_ids)
    if not students:
        raise ServiceError("No students found to promote", status.HTTP_404_NOT_FOUND)

    observed_strength = to_section.current_strength
    available = to_section.capacity - observed_strength
    required = len(students)
    if available < required:
        logger.warning(
            "Bulk promotion into section %s rejected: available %s, required %s", to_section.id, available, required
        )
        raise ServiceError(
            f"Not enough capacity in target section. Available: {available}, Required: {required}",
            status.HTTP_400_BAD_REQUEST,
        )

    if not await section_service.reserve_seats_if_unchanged(db, to_section.id, required, observed_strength):
        await db.rollback()
        raise ServiceError(
            "Target section occupancy changed during promotion. Please retry",
            status.HTTP_409_CONFLICT,
        )

    results = BulkPromoteResults()
    roll_number = observed_strength + 1
    for student in students:
        # Read before the savepoint: a rolled-back savepoint expires the row
        student_id, admission_number, name = student.id, student.admission_number, full_name(student)
        try:
            async with db.begin_nested():
                old_section_id = student.section_id
                student.class_id = to_class.id
                student.section_id = to_section.id
                student.roll_number = roll_number
                await section_service.release_seats(db, old_section_id, 1)
                notify(
                    db,
                    student.user_id,
                    PROMOTION_TITLE,
                    _promotion_message(to_class.name),
                    NotificationType.SUCCESS,
                )
                await db.flush()
        except SQLAlchemyError as e:
            logger.warning("Bulk promotion of student %s failed: %s", student_id, e)
            results.failed.append(
                LifecycleFailureItem(
                    student_id=student_id,
                    admission_number=admission_number,
                    name=name,
                    reason=str(e),
                )
            )
            continue
        results.successful.append(
            PromotionSuccessItem(
                student_id=student_id,
                admission_number=admission_number,
                name=name,
                new_class=to_class.name,
                new_section=to_section.name,
                new_roll_number=roll_number,
            )
        )
        roll_number += 1

    if results.failed:
        await section_service.release_seats(db, to_section.id, len(results.failed))

    log_activity(
        db,
        user_id=performed_by.id,
        user_role=performed_by.role,
        action="BULK_PROMOTE",
        module=MODULE,
        description=f"Promoted {len(results.successful)} students from {from_class.name} to {to_class.name}",
        ip_address=ip_address,
        metadata={
            "from_class_id": str(from_class.id),
            "from_section_id": str(payload.from_section_id) if payload.from_section_id else None,
            "to_class_id": str(to_class.id),
            "to_section_id": str(to_section.id),
            "academic_year_id": str(payload.academic_year_id) if payload.academic_year_id else None,
            "successful": len(results.successful),
            "failed": len(results.failed),
        },
    )
    await db.commit()
    logger.info(
        "Bulk promotion into section %s: %s promoted, %s failed",
        to_section.id,
        len(results.successful),
        len(results.failed),
    )
    return StudentBulkPromoteResult(
        message=f"Promoted {len(results.successful)} students successfully",
        results=results,
    )


async def graduate_students(
    db: AsyncSession,
    payload: GraduateStudentsRequest,
    performed_by: CurrentUser,
    ip_address: Optional[str] = None,
) -> GraduateStudentsResult:
    """Graduate the given students, or every active student of a class (optionally one section)."""
    stmt = select(Student).where(Student.status == StudentStatus.ACTIVE.value)
    if payload.student_ids:
        stmt = stmt.where(Student.id.in_(payload.student_ids))
    elif payload.class_id:
        stmt = stmt.where(Student.class_id == payload.class_id)
        if payload.section_id:
            stmt = stmt.where(Student.section_id == payload.section_id)
    else:
        raise ServiceError("Please provide studentIds or classId", status.HTTP_400_BAD_REQUEST)

    students = list((await db.execute(stmt)).scalars().all())
    if not students:
        raise ServiceError("No students found to graduate", status.HTTP_404_NOT_FOUND)

    result = GraduateStudentsResult(message="")
    for student in students:
        student_id, admission_number, name = student.id, student.admission_number, full_name(student)
        try:
            async with db.begin_nested():
                student.status = StudentStatus.GRADUATED.value
                await section_service.release_seats(db, student.section_id, 1)
                notify(db, student.user_id, GRADUATION_TITLE, GRADUATION_MESSAGE, NotificationType.SUCCESS)
                await db.flush()
        except SQLAlchemyError as e:
            logger.warning("Graduation of student %s failed: %s", student_id, e)
            result.failed.append(
                LifecycleFailureItem(
                    student_id=student_id,
                    admission_number=admission_number,
                    name=name,
                    reason=str(e),
                )
            )
            continue
        result.graduated.append(
            GraduatedItem(student_id=student_id, name=name, admission_number=admission_number)
        )

    log_activity(
        db,
        user_id=performed_by.id,
        user_role=performed_by.role,
        action="GRADUATE",
        module=MODULE,
        description=f"Graduated {len(result.graduated)} students",
        ip_address=ip_address,
    )
    await db.commit()
    logger.info("Graduated %s students", len(result.graduated))
    result.message = f"{len(result.graduated)} students graduated successfully"
    return result


async def transfer_student(
    db: AsyncSession,
    student_id: UUID,
    payload: StudentTransfer,
    performed_by: CurrentUser,
    ip_address: Optional[str] = None,
) -> StudentResponse:
    student = await db.get(Student, student_id)
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    if student.status == StudentStatus.TRANSFERRED.value:
        raise ServiceError("Student already transferred", status.HTTP_400_BAD_REQUEST)

    # Graduated and inactive students hold no seat
    if student.status == StudentStatus.ACTIVE.value:
        await section_service.release_seats(db, student.section_id, 1)
    student.status = StudentStatus.TRANSFERRED.value

    if student.user_id:
        user = await db.get(User, student.user_id)
        if user:
            user.is_active = False

    notify(
        db,
        student.user_id,
        TRANSFER_TITLE,
        f"Your transfer to {payload.transfer_school} has been processed",
        NotificationType.INFO,
    )
    log_activity(
        db,
        user_id=performed_by.id,
        user_role=performed_by.role,
        action="TRANSFER",
        module=MODULE,
        description=f"Transferred student {full_name(student)} to {payload.transfer_school}",
        ip_address=ip_address,
        metadata={
            "transfer_school": payload.transfer_school,
            "transfer_date": payload.transfer_date.isoformat() if payload.transfer_date else None,
            "reason": payload.reason,
        },
    )
    await db.commit()
    await db.refresh(student)
    logger.info("Student %s transferred to %s", student_id, payload.transfer_school)
    return StudentResponse.model_validate(student)


async def promotion_preview(
    db: AsyncSession,
    from_class_id: UUID,
    to_section_id: UUID,
    from_section_id: Optional[UUID] = None,
    to_class_id: Optional[UUID] = None,
) -> PromotionPreviewResponse:
    """What a bulk promotion would do, without changing anything."""
    students = await _select_cohort(db, from_class_id, from_section_id)

    stmt = select(Section).where(Section.id == to_section_id)
    if to_class_id is not None:
        stmt = stmt.where(Section.class_id == to_class_id)
    to_section = (await db.execute(stmt)).scalar_one_or_none()
    if not to_section:
        raise ServiceError("Target section not found", status.HTTP_404_NOT_FOUND)
    target_class = await db.get(SchoolClass, to_section.class_id)

    available = to_section.capacity - to_section.current_strength
    return PromotionPreviewResponse(
        preview=PromotionPreview(
            total_students=len(students),
            target_section=PreviewTargetSection(
                id=to_section.id,
                name=to_section.name,
                class_name=target_class.name if target_class else None,
                capacity=to_section.capacity,
                current_strength=to_section.current_strength,
                available_capacity=available,
            ),
            can_promote_all=len(students) <= available,
            students=[PreviewStudent.model_validate(s) for s in students],
        )
    )
