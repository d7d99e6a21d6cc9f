from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from schoolhub.core.enums import UserRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: UserRole


class RefreshRequest(BaseModel):
    """Body is optional; the refresh_token cookie takes precedence."""

    refresh_token: Optional[str] = None


class UserInfo(BaseModel):
    id: UUID
    email: EmailStr
    role: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    success: bool = True
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserInfo


class UserEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    user: UserInfo


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for RBAC checks."""

    id: UUID
    email: str
    role: str
