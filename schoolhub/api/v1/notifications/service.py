from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.core.enums import NotificationType
from schoolhub.core.exceptions import ServiceError
from schoolhub.core.models import Notification

from .schemas import NotificationResponse


def notify(
    db: AsyncSession,
    user_id: Optional[UUID],
    title: str,
    message: str,
    type_: NotificationType = NotificationType.INFO,
    link: Optional[str] = None,
) -> Optional[Notification]:
    """Queue a notification for user_id. Caller must commit. No-op when the student has no login account."""
    if user_id is None:
        return None
    obj = Notification(user_id=user_id, title=title, message=message, type=type_.value, link=link)
    db.add(obj)
    return obj


async def list_notifications(
    db: AsyncSession,
    user_id: UUID,
    unread_only: bool = False,
) -> List[NotificationResponse]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc())
    result = await db.execute(stmt)
    return [NotificationResponse.model_validate(n) for n in result.scalars().all()]


async def mark_read(db: AsyncSession, user_id: UUID, notification_id: UUID) -> NotificationResponse:
    obj = await db.get(Notification, notification_id)
    if not obj or obj.user_id != user_id:
        raise ServiceError("Notification not found", status.HTTP_404_NOT_FOUND)
    obj.is_read = True
    await db.commit()
    await db.refresh(obj)
    return NotificationResponse.model_validate(obj)
