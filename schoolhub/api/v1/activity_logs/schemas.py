from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel

from schoolhub.core.schemas import Pagination


class ActivityLogResponse(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    user_role: Optional[str] = None
    action: str
    module: str
    description: str
    ip_address: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime


class ActivityLogListResponse(BaseModel):
    success: bool = True
    logs: List[ActivityLogResponse]
    pagination: Pagination
