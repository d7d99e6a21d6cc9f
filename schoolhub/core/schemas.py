import math
from typing import Optional

from pydantic import BaseModel, Field


class Pagination(BaseModel):
    """Pagination block of list responses: pages = ceil(total / limit)."""

    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    pages: int = Field(..., ge=0)

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=total, page=page, pages=math.ceil(total / limit) if limit else 0)


class MessageResponse(BaseModel):
    """Bare envelope for operations that return no entity."""

    success: bool = True
    message: Optional[str] = None
