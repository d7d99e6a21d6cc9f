from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.core.exceptions import ServiceError
from schoolhub.core.models import AcademicYear, SchoolClass

from .schemas import AcademicYearCreate, AcademicYearResponse, AcademicYearUpdate


def _validate_dates(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise ServiceError("end_date must be after start_date", status.HTTP_400_BAD_REQUEST)


async def _unset_current(db: AsyncSession) -> None:
    await db.execute(update(AcademicYear).values(is_current=False))


async def create_academic_year(db: AsyncSession, payload: AcademicYearCreate) -> AcademicYearResponse:
    """Create academic year. If is_current=true, unset current on all other years (same transaction)."""
    _validate_dates(payload.start_date, payload.end_date)
    name = payload.name.strip()
    existing = await db.execute(select(AcademicYear).where(AcademicYear.name == name))
    if existing.scalar_one_or_none():
        raise ServiceError("Academic year already exists", status.HTTP_400_BAD_REQUEST)
    if payload.is_current:
        await _unset_current(db)
    ay = AcademicYear(
        name=name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_current=payload.is_current,
    )
    db.add(ay)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ServiceError("Academic year already exists", status.HTTP_400_BAD_REQUEST)
    await db.refresh(ay)
    return AcademicYearResponse.model_validate(ay)


async def list_academic_years(db: AsyncSession) -> List[AcademicYearResponse]:
    result = await db.execute(select(AcademicYear).order_by(AcademicYear.start_date.desc()))
    return [AcademicYearResponse.model_validate(ay) for ay in result.scalars().all()]


async def get_academic_year(db: AsyncSession, academic_year_id: UUID) -> Optional[AcademicYearResponse]:
    ay = await db.get(AcademicYear, academic_year_id)
    return AcademicYearResponse.model_validate(ay) if ay else None


async def get_current_academic_year(db: AsyncSession) -> AcademicYearResponse:
    result = await db.execute(select(AcademicYear).where(AcademicYear.is_current.is_(True)).limit(1))
    ay = result.scalar_one_or_none()
    if not ay:
        raise ServiceError("No current academic year set", status.HTTP_404_NOT_FOUND)
    return AcademicYearResponse.model_validate(ay)


async def update_academic_year(
    db: AsyncSession,
    academic_year_id: UUID,
    payload: AcademicYearUpdate,
) -> AcademicYearResponse:
    ay = await db.get(AcademicYear, academic_year_id)
    if not ay:
        raise ServiceError("Academic year not found", status.HTTP_404_NOT_FOUND)
    if payload.name is not None:
        other = await db.execute(
            select(AcademicYear.id).where(
                AcademicYear.name == payload.name.strip(),
                AcademicYear.id != academic_year_id,
            )
        )
        if other.scalar_one_or_none():
            raise ServiceError("Academic year already exists", status.HTTP_400_BAD_REQUEST)
        ay.name = payload.name.strip()
    if payload.start_date is not None:
        ay.start_date = payload.start_date
    if payload.end_date is not None:
        ay.end_date = payload.end_date
    if payload.start_date is not None or payload.end_date is not None:
        _validate_dates(ay.start_date, ay.end_date)
    if payload.is_current is True:
        await _unset_current(db)
        ay.is_current = True
    elif payload.is_current is False:
        ay.is_current = False
    await db.commit()
    await db.refresh(ay)
    return AcademicYearResponse.model_validate(ay)


async def set_academic_year_current(db: AsyncSession, academic_year_id: UUID) -> AcademicYearResponse:
    """Set this academic year as current. All others become is_current=false (one transaction)."""
    ay = await db.get(AcademicYear, academic_year_id)
    if not ay:
        raise ServiceError("Academic year not found", status.HTTP_404_NOT_FOUND)
    await _unset_current(db)
    ay.is_current = True
    await db.commit()
    await db.refresh(ay)
    return AcademicYearResponse.model_validate(ay)


async def delete_academic_year(db: AsyncSession, academic_year_id: UUID) -> bool:
    ay = await db.get(AcademicYear, academic_year_id)
    if not ay:
        return False
    used = await db.execute(
        select(SchoolClass.id).where(SchoolClass.academic_year_id == academic_year_id).limit(1)
    )
    if used.scalar_one_or_none() is not None:
        raise ServiceError("Cannot delete academic year: it is used by classes", status.HTTP_400_BAD_REQUEST)
    await db.delete(ay)
    await db.commit()
    return True
