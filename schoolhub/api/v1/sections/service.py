"""
Sections and their occupancy counter.

current_strength is only ever changed here. reserve_seats / release_seats are
single conditional UPDATE statements so the capacity check and the increment
happen atomically in the database; callers own the transaction.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.core.enums import StudentStatus
from schoolhub.core.exceptions import ServiceError
from schoolhub.core.models import SchoolClass, Section, Student

from .schemas import SectionCreate, SectionResponse, SectionUpdate

logger = logging.getLogger(__name__)


def _section_to_response(s: Section) -> SectionResponse:
    return SectionResponse(
        id=s.id,
        class_id=s.class_id,
        name=s.name,
        capacity=s.capacity,
        current_strength=s.current_strength,
        available_capacity=max(s.capacity - s.current_strength, 0),
        class_teacher_id=s.class_teacher_id,
        room=s.room,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


# ----- occupancy primitives -----

async def reserve_seats(db: AsyncSession, section_id: UUID, n: int = 1) -> bool:
    """Take n seats if they fit. Returns False (and changes nothing) when the section is full or missing."""
    if n <= 0:
        return True
    result = await db.execute(
        update(Section)
        .where(Section.id == section_id, Section.current_strength + n <= Section.capacity)
        .values(current_strength=Section.current_strength + n)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def reserve_seats_if_unchanged(
    db: AsyncSession, section_id: UUID, n: int, expected_strength: int
) -> bool:
    """
    Compare-and-swap reservation: succeeds only if current_strength still equals
    expected_strength and the n seats fit. Used by bulk promotion, which hands out
    roll numbers based on the observed strength.
    """
    result = await db.execute(
        update(Section)
        .where(
            Section.id == section_id,
            Section.current_strength == expected_strength,
            Section.current_strength + n <= Section.capacity,
        )
        .values(current_strength=Section.current_strength + n)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_seats(db: AsyncSession, section_id: Optional[UUID], n: int = 1) -> None:
    """Give back n seats. Never drops the counter below zero."""
    if section_id is None or n <= 0:
        return
    await db.execute(
        update(Section)
        .where(Section.id == section_id)
        .values(
            current_strength=case(
                (Section.current_strength >= n, Section.current_strength - n),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )


async def get_section_in_class(db: AsyncSession, section_id: UUID, class_id: UUID) -> Optional[Section]:
    """Section by id, only if it belongs to the given class."""
    result = await db.execute(
        select(Section).where(Section.id == section_id, Section.class_id == class_id)
    )
    return result.scalar_one_or_none()


# ----- CRUD -----

async def create_section(db: AsyncSession, payload: SectionCreate) -> SectionResponse:
    school_class = await db.get(SchoolClass, payload.class_id)
    if not school_class:
        raise ServiceError("Invalid class", status.HTTP_400_BAD_REQUEST)
    try:
        obj = Section(
            class_id=payload.class_id,
            name=payload.name.strip(),
            capacity=payload.capacity,
            current_strength=0,
            class_teacher_id=payload.class_teacher_id,
            room=payload.room,
        )
        db.add(obj)
        await db.commit()
        await db.refresh(obj)
        return _section_to_response(obj)
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Section name already exists for this class", status.HTTP_409_CONFLICT)


async def list_sections(db: AsyncSession, class_id: Optional[UUID] = None) -> List[SectionResponse]:
    stmt = select(Section)
    if class_id is not None:
        stmt = stmt.where(Section.class_id == class_id)
    stmt = stmt.order_by(Section.name)
    result = await db.execute(stmt)
    return [_section_to_response(s) for s in result.scalars().all()]


async def get_section(db: AsyncSession, section_id: UUID) -> Optional[SectionResponse]:
    obj = await db.get(Section, section_id)
    if not obj:
        return None
    return _section_to_response(obj)


async def update_section(
    db: AsyncSession,
    section_id: UUID,
    payload: SectionUpdate,
) -> Optional[SectionResponse]:
    obj = await db.get(Section, section_id)
    if not obj:
        return None
    if payload.capacity is not None:
        # Conditional so a concurrent reservation cannot slip in above the new capacity
        result = await db.execute(
            update(Section)
            .where(Section.id == section_id, Section.current_strength <= payload.capacity)
            .values(capacity=payload.capacity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise ServiceError(
                "Capacity cannot be lower than the current strength of the section",
                status.HTTP_400_BAD_REQUEST,
            )
    if payload.name is not None:
        obj.name = payload.name.strip()
    if payload.class_teacher_id is not None:
        obj.class_teacher_id = payload.class_teacher_id
    if payload.room is not None:
        obj.room = payload.room
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Section name already exists for this class", status.HTTP_409_CONFLICT)
    await db.refresh(obj)
    return _section_to_response(obj)


async def delete_section(db: AsyncSession, section_id: UUID) -> bool:
    obj = await db.get(Section, section_id)
    if not obj:
        return False
    used = await db.execute(select(Student.id).where(Student.section_id == section_id).limit(1))
    if used.scalar_one_or_none() is not None:
        raise ServiceError("Cannot delete section: it is used by students", status.HTTP_400_BAD_REQUEST)
    await db.delete(obj)
    await db.commit()
    return True


async def recount_section(db: AsyncSession, section_id: UUID) -> Optional[SectionResponse]:
    """Recompute current_strength from the number of active students in the section."""
    obj = await db.get(Section, section_id)
    if not obj:
        return None
    active_count = (
        await db.execute(
            select(func.count(Student.id)).where(
                Student.section_id == section_id,
                Student.status == StudentStatus.ACTIVE.value,
            )
        )
    ).scalar() or 0
    if active_count != obj.current_strength:
        logger.warning(
            "Section %s counter drift: stored=%s actual=%s", section_id, obj.current_strength, active_count
        )
    obj.current_strength = active_count
    await db.commit()
    await db.refresh(obj)
    return _section_to_response(obj)
