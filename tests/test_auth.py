import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from schoolhub.auth.models import RefreshToken, User
from schoolhub.core.models import ActivityLog

from helpers import DEFAULT_PASSWORD, auth_headers, make_user


@pytest.mark.asyncio
async def test_login_success_returns_tokens_and_sets_cookies(
    client: AsyncClient, session_factory: async_sessionmaker
) -> None:
    await make_user(session_factory, "Teacher@School.example.com", "teacher")

    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "TEACHER@school.example.com", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["success"] is True
    assert data["token_type"] == "bearer"
    assert data["access_token"]
    assert data["refresh_token"]
    assert data["user"]["email"] == "teacher@school.example.com"
    assert data["user"]["role"] == "teacher"
    assert "access_token" in response.cookies
    assert "refresh_token" in response.cookies

    async with session_factory() as s:
        user = (await s.execute(select(User).where(User.email == "teacher@school.example.com"))).scalar_one()
        assert user.last_login is not None
        tokens = (await s.execute(select(RefreshToken).where(RefreshToken.user_id == user.id))).scalars().all()
        assert len(tokens) == 1
        logs = (await s.execute(select(ActivityLog).where(ActivityLog.action == "LOGIN"))).scalars().all()
        assert len(logs) == 1
        assert logs[0].module == "AUTH"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, session_factory: async_sessionmaker) -> None:
    await make_user(session_factory, "teacher@school.example.com", "teacher")
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "teacher@school.example.com", "password": "not-the-password"},
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid credentials"}


@pytest.mark.asyncio
async def test_login_unknown_email(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "nobody@school.example.com", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_suspended_account(client: AsyncClient, session_factory: async_sessionmaker) -> None:
    await make_user(session_factory, "old@school.example.com", "teacher", is_active=False)
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "old@school.example.com", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 403
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_refresh_rotates_token(client: AsyncClient, session_factory: async_sessionmaker) -> None:
    await make_user(session_factory, "teacher@school.example.com", "teacher")
    login = await client.post(
        "/api/v1/auth/login",
        json={"email": "teacher@school.example.com", "password": DEFAULT_PASSWORD},
    )
    old_refresh = login.json()["refresh_token"]
    client.cookies.clear()

    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": old_refresh})
    assert response.status_code == 200, response.text
    new_refresh = response.json()["refresh_token"]
    assert new_refresh != old_refresh
    client.cookies.clear()

    # The old token was consumed by the rotation
    reused = await client.post("/api/v1/auth/refresh", json={"refresh_token": old_refresh})
    assert reused.status_code == 401
    assert reused.json()["message"] == "Invalid refresh token"


@pytest.mark.asyncio
async def test_refresh_without_token(client: AsyncClient) -> None:
    response = await client.post("/api/v1/auth/refresh")
    assert response.status_code == 401
    assert response.json()["message"] == "Please login to access this resource"


@pytest.mark.asyncio
async def test_logout_deletes_refresh_token(client: AsyncClient, session_factory: async_sessionmaker) -> None:
    await make_user(session_factory, "teacher@school.example.com", "teacher")
    login = await client.post(
        "/api/v1/auth/login",
        json={"email": "teacher@school.example.com", "password": DEFAULT_PASSWORD},
    )
    refresh_token = login.json()["refresh_token"]

    response = await client.post("/api/v1/auth/logout")
    assert response.status_code == 200
    assert response.json()["success"] is True

    async with session_factory() as s:
        stored = (await s.execute(select(RefreshToken).where(RefreshToken.token == refresh_token))).scalar_one_or_none()
        assert stored is None


@pytest.mark.asyncio
async def test_me_requires_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Please login to access this resource"}


@pytest.mark.asyncio
async def test_me_with_bearer_token(client: AsyncClient, session_factory: async_sessionmaker) -> None:
    user = await make_user(session_factory, "teacher@school.example.com", "teacher")
    response = await client.get("/api/v1/auth/me", headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["user"]["id"] == str(user.id)


@pytest.mark.asyncio
async def test_invalid_access_token(client: AsyncClient) -> None:
    response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid access token"


@pytest.mark.asyncio
async def test_register_by_admin(client: AsyncClient, admin_headers) -> None:
    payload = {"email": "New.Teacher@school.example.com", "password": "Password123", "role": "teacher"}
    response = await client.post("/api/v1/auth/register", json=payload, headers=admin_headers)
    assert response.status_code == 201, response.text
    assert response.json()["user"]["email"] == "new.teacher@school.example.com"

    duplicate = await client.post("/api/v1/auth/register", json=payload, headers=admin_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "User already exists"


@pytest.mark.asyncio
async def test_register_forbidden_for_teacher(client: AsyncClient, session_factory: async_sessionmaker) -> None:
    teacher = await make_user(session_factory, "teacher@school.example.com", "teacher")
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": "x@school.example.com", "password": "Password123", "role": "teacher"},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 403
    assert response.json()["message"] == "Role (teacher) is not allowed to access this resource"
