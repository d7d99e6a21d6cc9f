import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from fastapi import status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.api.v1.activity_logs.service import log_activity
from schoolhub.auth.models import RefreshToken, User
from schoolhub.auth.schemas import LoginRequest, LoginResponse, RegisterRequest, UserInfo
from schoolhub.auth.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    is_expired,
    verify_password,
)
from schoolhub.core.exceptions import ServiceError

logger = logging.getLogger(__name__)

SUSPENDED_MESSAGE = "This account has been suspended! Try to contact the admin"


def _access_token_for(user: User) -> str:
    issued_at = datetime.now(timezone.utc)
    return create_access_token(
        subject={
            "sub": str(user.id),
            "user_id": str(user.id),
            "role": user.role,
            "iat": int(issued_at.timestamp()),
        }
    )


async def _issue_token_pair(db: AsyncSession, user: User) -> Tuple[str, str]:
    """Create access token and a stored refresh token. Does not commit."""
    access_token = _access_token_for(user)
    refresh_token_str, refresh_expires_at = create_refresh_token()
    db.add(RefreshToken(user_id=user.id, token=refresh_token_str, expires_at=refresh_expires_at))
    return access_token, refresh_token_str


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(func.lower(User.email) == email.strip().lower()))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, email: str, password: str, role: str) -> User:
    """Add a login account to the session (flushed, not committed)."""
    user = User(
        email=email.strip().lower(),
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    return user


async def register_user(db: AsyncSession, payload: RegisterRequest, performed_by) -> UserInfo:
    if await get_user_by_email(db, payload.email):
        raise ServiceError("User already exists", status.HTTP_400_BAD_REQUEST)
    try:
        user = await create_user(db, payload.email, payload.password, payload.role.value)
        log_activity(
            db,
            user_id=performed_by.id,
            user_role=performed_by.role,
            action="REGISTER",
            module="AUTH",
            description=f"User registered with role: {user.role}",
        )
        await db.commit()
        await db.refresh(user)
    except IntegrityError as e:
        await db.rollback()
        raise ServiceError("User already exists", status.HTTP_400_BAD_REQUEST) from e
    return UserInfo.model_validate(user)


async def login_user(
    db: AsyncSession, payload: LoginRequest, ip_address: Optional[str] = None
) -> LoginResponse:
    # 1. Find user by email (case-insensitive)
    user = await get_user_by_email(db, payload.email)
    if not user:
        raise ServiceError("Invalid credentials", status.HTTP_400_BAD_REQUEST)

    # 2. Verify password hash
    if not verify_password(payload.password, user.password_hash):
        raise ServiceError("Invalid credentials", status.HTTP_400_BAD_REQUEST)

    # 3. Check user status
    if not user.is_active:
        raise ServiceError(SUSPENDED_MESSAGE, status.HTTP_403_FORBIDDEN)

    # 4. Issue token pair and record the login
    user.last_login = datetime.now(timezone.utc)
    access_token, refresh_token = await _issue_token_pair(db, user)
    log_activity(
        db,
        user_id=user.id,
        user_role=user.role,
        action="LOGIN",
        module="AUTH",
        description="User logged in",
        ip_address=ip_address,
    )
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        raise ServiceError(
            "Failed to persist authentication state",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ) from e
    await db.refresh(user)
    logger.info("User %s logged in", user.id)

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserInfo.model_validate(user),
    )


async def refresh_tokens(db: AsyncSession, refresh_token: Optional[str]) -> LoginResponse:
    """Validate a stored refresh token and rotate it: the old token is deleted, a new pair is issued."""
    if not refresh_token:
        raise ServiceError("Please login to access this resource", status.HTTP_401_UNAUTHORIZED)

    result = await db.execute(select(RefreshToken).where(RefreshToken.token == refresh_token))
    stored = result.scalar_one_or_none()
    if not stored:
        raise ServiceError("Invalid refresh token", status.HTTP_401_UNAUTHORIZED)
    if is_expired(stored.expires_at):
        await db.delete(stored)
        await db.commit()
        raise ServiceError("Refresh token expired. Please login again", status.HTTP_401_UNAUTHORIZED)

    user = await db.get(User, stored.user_id)
    if not user:
        raise ServiceError("User not found", status.HTTP_401_UNAUTHORIZED)
    if not user.is_active:
        raise ServiceError(SUSPENDED_MESSAGE, status.HTTP_403_FORBIDDEN)

    await db.delete(stored)
    access_token, new_refresh_token = await _issue_token_pair(db, user)
    await db.commit()

    return LoginResponse(
        access_token=access_token,
        refresh_token=new_refresh_token,
        user=UserInfo.model_validate(user),
    )


async def logout_user(db: AsyncSession, refresh_token: Optional[str]) -> None:
    if not refresh_token:
        return
    await db.execute(delete(RefreshToken).where(RefreshToken.token == refresh_token))
    await db.commit()
