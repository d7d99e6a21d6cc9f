from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.auth.rbac import check_permission
from schoolhub.db.session import get_db

from .schemas import ActivityLogListResponse
from . import service

router = APIRouter(prefix="/api/v1/activity-logs", tags=["activity-logs"])


@router.get(
    "",
    response_model=ActivityLogListResponse,
    dependencies=[Depends(check_permission("activity_logs", "list"))],
)
async def list_activity_logs(
    module: Optional[str] = Query(None, description="e.g. STUDENT, AUTH"),
    action: Optional[str] = Query(None, description="e.g. PROMOTE, TRANSFER"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> ActivityLogListResponse:
    return await service.list_activity_logs(db, module=module, action=action, page=page, limit=limit)
