from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.auth.dependencies import get_current_user
from schoolhub.auth.rbac import check_permission
from schoolhub.auth.schemas import CurrentUser
from schoolhub.core.config import settings
from schoolhub.core.enums import StudentStatus
from schoolhub.core.exceptions import ServiceError
from schoolhub.core.schemas import MessageResponse
from schoolhub.db.session import get_db

from .schemas import (
    GraduateStudentsRequest,
    GraduateStudentsResult,
    PromotionPreviewResponse,
    StudentBulkCreate,
    StudentBulkPromote,
    StudentBulkPromoteResult,
    StudentBulkResponse,
    StudentBulkUpdate,
    StudentBulkUpdateResponse,
    StudentCreate,
    StudentEnvelope,
    StudentListResponse,
    StudentPromote,
    StudentTransfer,
    StudentUpdate,
)
from . import lifecycle, service

router = APIRouter(prefix="/api/v1", tags=["students"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# ----- directory -----

@router.post(
    "/create-student",
    response_model=StudentEnvelope,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("students", "create"))],
)
async def create_student(
    payload: StudentCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentEnvelope:
    try:
        student = await service.create_student(db, payload, current_user, _client_ip(request))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return StudentEnvelope(message="Student created successfully", student=student)


@router.get(
    "/students",
    response_model=StudentListResponse,
    dependencies=[Depends(check_permission("students", "list"))],
)
async def list_students(
    class_id: Optional[UUID] = Query(None),
    section_id: Optional[UUID] = Query(None),
    status_filter: Optional[StudentStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Case-insensitive match on first name, last name or admission number"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
) -> StudentListResponse:
    return await service.list_students(
        db,
        class_id=class_id,
        section_id=section_id,
        status_filter=status_filter.value if status_filter else None,
        search=search,
        page=page,
        limit=limit,
    )


@router.get(
    "/student/{student_id}",
    response_model=StudentEnvelope,
    dependencies=[Depends(check_permission("students", "read"))],
)
async def get_student(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> StudentEnvelope:
    try:
        student = await service.get_student(db, student_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return StudentEnvelope(student=student)


@router.put(
    "/update-student/{student_id}",
    response_model=StudentEnvelope,
    dependencies=[Depends(check_permission("students", "update"))],
)
async def update_student(
    student_id: UUID,
    payload: StudentUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentEnvelope:
    try:
        student = await service.update_student(db, student_id, payload, current_user, _client_ip(request))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return StudentEnvelope(message="Student updated successfully", student=student)


@router.delete(
    "/delete-student/{student_id}",
    response_model=MessageResponse,
    dependencies=[Depends(check_permission("students", "delete"))],
)
async def delete_student(
    student_id: UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> MessageResponse:
    try:
        await service.delete_student(db, student_id, current_user, _client_ip(request))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return MessageResponse(message="Student deleted successfully")


@router.post(
    "/bulk-upload-students",
    response_model=StudentBulkResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("students", "bulk"))],
)
async def bulk_upload_students(
    payload: StudentBulkCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentBulkResponse:
    """Valid rows are created; failed rows come back in `failed` with a reason."""
    try:
        return await service.create_students_bulk(
            db, list(enumerate(payload.students)), current_user, ip_address=_client_ip(request)
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/bulk-upload-students/excel",
    response_model=StudentBulkResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("students", "bulk"))],
)
async def bulk_upload_students_excel(
    request: Request,
    file: UploadFile = File(..., description="Excel (.xlsx) with a header row naming the student fields"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentBulkResponse:
    try:
        parsed, parse_failures = await service.parse_students_excel(file)
        if not parsed and not parse_failures:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Excel file has no data rows")
        return await service.create_students_bulk(
            db, parsed, current_user, failed=parse_failures, ip_address=_client_ip(request)
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put(
    "/bulk-update-students",
    response_model=StudentBulkUpdateResponse,
    dependencies=[Depends(check_permission("students", "bulk"))],
)
async def bulk_update_students(
    payload: StudentBulkUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentBulkUpdateResponse:
    try:
        return await service.bulk_update_students(db, payload, current_user, _client_ip(request))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


# ----- lifecycle -----

@router.put(
    "/promote-student/{student_id}",
    response_model=StudentEnvelope,
    dependencies=[Depends(check_permission("students", "promote"))],
)
async def promote_student(
    student_id: UUID,
    payload: StudentPromote,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentEnvelope:
    try:
        student = await lifecycle.promote_student(db, student_id, payload, current_user, _client_ip(request))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return StudentEnvelope(message="Student promoted successfully", student=student)


@router.post(
    "/bulk-promote-students",
    response_model=StudentBulkPromoteResult,
    dependencies=[Depends(check_permission("students", "promote"))],
)
async def bulk_promote_students(
    payload: StudentBulkPromote,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentBulkPromoteResult:
    try:
        return await lifecycle.bulk_promote_students(db, payload, current_user, _client_ip(request))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/graduate-students",
    response_model=GraduateStudentsResult,
    dependencies=[Depends(check_permission("students", "graduate"))],
)
async def graduate_students(
    payload: GraduateStudentsRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> GraduateStudentsResult:
    try:
        return await lifecycle.graduate_students(db, payload, current_user, _client_ip(request))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put(
    "/transfer-student/{student_id}",
    response_model=StudentEnvelope,
    dependencies=[Depends(check_permission("students", "transfer"))],
)
async def transfer_student(
    student_id: UUID,
    payload: StudentTransfer,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentEnvelope:
    try:
        student = await lifecycle.transfer_student(db, student_id, payload, current_user, _client_ip(request))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return StudentEnvelope(message="Student transferred successfully", student=student)


@router.get(
    "/promotion-preview",
    response_model=PromotionPreviewResponse,
    dependencies=[Depends(check_permission("students", "promote"))],
)
async def promotion_preview(
    from_class_id: UUID = Query(...),
    to_section_id: UUID = Query(...),
    from_section_id: Optional[UUID] = Query(None),
    to_class_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> PromotionPreviewResponse:
    """Read-only: cohort size and target capacity for a planned bulk promotion."""
    try:
        return await lifecycle.promotion_preview(
            db,
            from_class_id,
            to_section_id,
            from_section_id=from_section_id,
            to_class_id=to_class_id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
