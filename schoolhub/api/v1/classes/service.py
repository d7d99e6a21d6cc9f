from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.auth.models import User
from schoolhub.core.enums import UserRole
from schoolhub.core.exceptions import ServiceError
from schoolhub.core.models import AcademicYear, SchoolClass, Section, Student

from .schemas import AssignClassTeacher, ClassCreate, ClassResponse, ClassUpdate


async def create_class(db: AsyncSession, payload: ClassCreate) -> ClassResponse:
    if not await db.get(AcademicYear, payload.academic_year_id):
        raise ServiceError("Invalid academic year", status.HTTP_400_BAD_REQUEST)
    obj = SchoolClass(
        name=payload.name.strip(),
        level=payload.level,
        capacity=payload.capacity,
        academic_year_id=payload.academic_year_id,
        class_teacher_id=payload.class_teacher_id,
    )
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return ClassResponse.model_validate(obj)


async def list_classes(
    db: AsyncSession,
    academic_year_id: Optional[UUID] = None,
) -> List[ClassResponse]:
    stmt = select(SchoolClass)
    if academic_year_id is not None:
        stmt = stmt.where(SchoolClass.academic_year_id == academic_year_id)
    stmt = stmt.order_by(SchoolClass.level, SchoolClass.name)
    result = await db.execute(stmt)
    return [ClassResponse.model_validate(c) for c in result.scalars().all()]


async def get_class(db: AsyncSession, class_id: UUID) -> Optional[ClassResponse]:
    obj = await db.get(SchoolClass, class_id)
    return ClassResponse.model_validate(obj) if obj else None


async def update_class(db: AsyncSession, class_id: UUID, payload: ClassUpdate) -> Optional[ClassResponse]:
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        return None
    if payload.name is not None:
        obj.name = payload.name.strip()
    if payload.level is not None:
        obj.level = payload.level
    if payload.capacity is not None:
        obj.capacity = payload.capacity
    await db.commit()
    await db.refresh(obj)
    return ClassResponse.model_validate(obj)


async def assign_class_teacher(
    db: AsyncSession,
    class_id: UUID,
    payload: AssignClassTeacher,
) -> ClassResponse:
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        raise ServiceError("Class not found", status.HTTP_404_NOT_FOUND)
    teacher = await db.get(User, payload.teacher_id)
    if not teacher or teacher.role != UserRole.TEACHER.value:
        raise ServiceError("Teacher not found", status.HTTP_400_BAD_REQUEST)
    obj.class_teacher_id = teacher.id
    await db.commit()
    await db.refresh(obj)
    return ClassResponse.model_validate(obj)


async def delete_class(db: AsyncSession, class_id: UUID) -> bool:
    obj = await db.get(SchoolClass, class_id)
    if not obj:
        return False
    for model, column in ((Section, Section.class_id), (Student, Student.class_id)):
        used = await db.execute(select(model.id).where(column == class_id).limit(1))
        if used.scalar_one_or_none() is not None:
            raise ServiceError(
                "Cannot delete class: it has sections or students", status.HTTP_400_BAD_REQUEST
            )
    await db.delete(obj)
    await db.commit()
    return True
