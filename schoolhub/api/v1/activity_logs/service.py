"""
Activity logging for state changes. Call on every mutating operation; the caller commits.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.core.models import ActivityLog
from schoolhub.core.schemas import Pagination

from .schemas import ActivityLogListResponse, ActivityLogResponse


def log_activity(
    db: AsyncSession,
    *,
    user_id: Optional[UUID],
    user_role: Optional[str],
    action: str,
    module: str,
    description: str,
    ip_address: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ActivityLog:
    """Append one activity log entry. Caller must commit."""
    entry = ActivityLog(
        user_id=user_id,
        user_role=user_role,
        action=action,
        module=module,
        description=description,
        ip_address=ip_address,
        extra=metadata,
    )
    db.add(entry)
    return entry


def _to_response(entry: ActivityLog) -> ActivityLogResponse:
    return ActivityLogResponse(
        id=entry.id,
        user_id=entry.user_id,
        user_role=entry.user_role,
        action=entry.action,
        module=entry.module,
        description=entry.description,
        ip_address=entry.ip_address,
        metadata=entry.extra,
        created_at=entry.created_at,
    )


async def list_activity_logs(
    db: AsyncSession,
    *,
    module: Optional[str] = None,
    action: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> ActivityLogListResponse:
    conditions = []
    if module:
        conditions.append(ActivityLog.module == module.upper())
    if action:
        conditions.append(ActivityLog.action == action.upper())

    total = (await db.execute(select(func.count(ActivityLog.id)).where(*conditions))).scalar() or 0
    result = await db.execute(
        select(ActivityLog)
        .where(*conditions)
        .order_by(ActivityLog.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return ActivityLogListResponse(
        logs=[_to_response(e) for e in result.scalars().all()],
        pagination=Pagination.build(total, page, limit),
    )
