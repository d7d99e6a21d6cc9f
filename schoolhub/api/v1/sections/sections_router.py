from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.auth.rbac import check_permission
from schoolhub.core.exceptions import ServiceError
from schoolhub.db.session import get_db

from .schemas import SectionCreate, SectionResponse, SectionUpdate
from . import service

router = APIRouter(prefix="/api/v1/sections", tags=["sections"])


@router.post(
    "",
    response_model=SectionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("sections", "create"))],
)
async def create_section(
    payload: SectionCreate,
    db: AsyncSession = Depends(get_db),
) -> SectionResponse:
    try:
        return await service.create_section(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[SectionResponse],
    dependencies=[Depends(check_permission("sections", "list"))],
)
async def list_sections(
    class_id: Optional[UUID] = Query(None, description="Filter by class (sections under this class)"),
    db: AsyncSession = Depends(get_db),
) -> List[SectionResponse]:
    return await service.list_sections(db, class_id=class_id)


@router.get(
    "/{section_id}",
    response_model=SectionResponse,
    dependencies=[Depends(check_permission("sections", "read"))],
)
async def get_section(
    section_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SectionResponse:
    obj = await service.get_section(db, section_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Section not found")
    return obj


@router.put(
    "/{section_id}",
    response_model=SectionResponse,
    dependencies=[Depends(check_permission("sections", "update"))],
)
async def update_section(
    section_id: UUID,
    payload: SectionUpdate,
    db: AsyncSession = Depends(get_db),
) -> SectionResponse:
    try:
        obj = await service.update_section(db, section_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Section not found")
    return obj


@router.post(
    "/{section_id}/recount",
    response_model=SectionResponse,
    dependencies=[Depends(check_permission("sections", "recount"))],
)
async def recount_section(
    section_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SectionResponse:
    """Recompute current_strength from active students (manual correction)."""
    obj = await service.recount_section(db, section_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Section not found")
    return obj


@router.delete(
    "/{section_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("sections", "delete"))],
)
async def delete_section(
    section_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        deleted = await service.delete_section(db, section_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Section not found")
