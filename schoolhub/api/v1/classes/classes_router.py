from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.auth.rbac import check_permission
from schoolhub.core.exceptions import ServiceError
from schoolhub.db.session import get_db

from .schemas import AssignClassTeacher, ClassCreate, ClassResponse, ClassUpdate
from . import service

router = APIRouter(prefix="/api/v1/classes", tags=["classes"])


@router.post(
    "",
    response_model=ClassResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("classes", "create"))],
)
async def create_class(
    payload: ClassCreate,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    try:
        return await service.create_class(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get(
    "",
    response_model=List[ClassResponse],
    dependencies=[Depends(check_permission("classes", "list"))],
)
async def list_classes(
    academic_year_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[ClassResponse]:
    """Classes ordered by level."""
    return await service.list_classes(db, academic_year_id=academic_year_id)


@router.get(
    "/{class_id}",
    response_model=ClassResponse,
    dependencies=[Depends(check_permission("classes", "read"))],
)
async def get_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    obj = await service.get_class(db, class_id)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return obj


@router.put(
    "/{class_id}",
    response_model=ClassResponse,
    dependencies=[Depends(check_permission("classes", "update"))],
)
async def update_class(
    class_id: UUID,
    payload: ClassUpdate,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    obj = await service.update_class(db, class_id, payload)
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
    return obj


@router.put(
    "/{class_id}/assign-teacher",
    response_model=ClassResponse,
    dependencies=[Depends(check_permission("classes", "assign_teacher"))],
)
async def assign_class_teacher(
    class_id: UUID,
    payload: AssignClassTeacher,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    try:
        return await service.assign_class_teacher(db, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete(
    "/{class_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("classes", "delete"))],
)
async def delete_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        deleted = await service.delete_class(db, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Class not found")
