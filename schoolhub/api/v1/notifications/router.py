from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.auth.dependencies import get_current_user
from schoolhub.auth.rbac import check_permission
from schoolhub.auth.schemas import CurrentUser
from schoolhub.core.exceptions import ServiceError
from schoolhub.db.session import get_db

from .schemas import NotificationEnvelope, NotificationListResponse
from . import service

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get(
    "",
    response_model=NotificationListResponse,
    dependencies=[Depends(check_permission("notifications", "list"))],
)
async def list_my_notifications(
    unread_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> NotificationListResponse:
    items = await service.list_notifications(db, current_user.id, unread_only=unread_only)
    return NotificationListResponse(notifications=items)


@router.put(
    "/{notification_id}/read",
    response_model=NotificationEnvelope,
    dependencies=[Depends(check_permission("notifications", "update"))],
)
async def mark_notification_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> NotificationEnvelope:
    try:
        obj = await service.mark_read(db, current_user.id, notification_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return NotificationEnvelope(notification=obj)
