from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response
from fastapi import status as http_status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from schoolhub.auth.dependencies import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, get_current_user
from schoolhub.auth.models import User
from schoolhub.auth.rbac import check_permission
from schoolhub.auth.schemas import (
    CurrentUser,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    UserEnvelope,
    UserInfo,
)
from schoolhub.auth.services import login_user, logout_user, refresh_tokens, register_user
from schoolhub.core.config import settings
from schoolhub.core.exceptions import ServiceError
from schoolhub.core.schemas import MessageResponse
from schoolhub.db.session import get_db

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _set_token_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        access_token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


@router.post(
    "/register",
    response_model=UserEnvelope,
    status_code=http_status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("users", "create"))],
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UserEnvelope:
    try:
        user = await register_user(db, payload, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return UserEnvelope(message="User registered successfully", user=user)


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    client_ip = request.client.host if request.client else None
    try:
        result = await login_user(db, payload, ip_address=client_ip)
    except ServiceError as e:
        if e.status_code == http_status.HTTP_500_INTERNAL_SERVER_ERROR:
            raise HTTPException(status_code=e.status_code, detail="Internal server error")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    _set_token_cookies(response, result.access_token, result.refresh_token)
    return result


@router.post("/login-oauth")
async def login_oauth(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    payload = LoginRequest(
        email=form_data.username.strip(),
        password=form_data.password,
    )
    try:
        result = await login_user(db, payload, ip_address=request.client.host if request.client else None)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {
        "access_token": result.access_token,
        "token_type": "bearer",
    }


@router.post("/refresh", response_model=LoginResponse)
async def refresh(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """Mint a new access/refresh pair from the refresh_token cookie (or body)."""
    token = request.cookies.get(REFRESH_TOKEN_COOKIE) or (payload.refresh_token if payload else None)
    try:
        result = await refresh_tokens(db, token)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    _set_token_cookies(response, result.access_token, result.refresh_token)
    return result


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await logout_user(db, request.cookies.get(REFRESH_TOKEN_COOKIE))
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    response.delete_cookie(REFRESH_TOKEN_COOKIE)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserEnvelope)
async def me(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UserEnvelope:
    user = await db.get(User, current_user.id)
    return UserEnvelope(user=UserInfo.model_validate(user))
