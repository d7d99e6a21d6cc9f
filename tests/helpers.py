"""Data helpers for tests. Each opens and closes its own session so no transaction is left open."""
from typing import Dict, Optional
from uuid import UUID

from httpx import AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker

from schoolhub.auth.models import User
from schoolhub.auth.security import create_access_token, hash_password
from schoolhub.core.models import Section

DEFAULT_PASSWORD = "Password123"


async def make_user(
    session_factory: async_sessionmaker,
    email: str,
    role: str,
    password: str = DEFAULT_PASSWORD,
    is_active: bool = True,
) -> User:
    async with session_factory() as s:
        user = User(
            email=email.lower(),
            password_hash=hash_password(password),
            role=role,
            is_active=is_active,
        )
        s.add(user)
        await s.commit()
        await s.refresh(user)
        return user


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(
        subject={"sub": str(user.id), "user_id": str(user.id), "role": user.role}
    )
    return {"Authorization": f"Bearer {token}"}


async def get_section(session_factory: async_sessionmaker, section_id: UUID) -> Section:
    async with session_factory() as s:
        return await s.get(Section, section_id)


async def set_strength(session_factory: async_sessionmaker, section_id: UUID, strength: int) -> None:
    async with session_factory() as s:
        await s.execute(update(Section).where(Section.id == section_id).values(current_strength=strength))
        await s.commit()


async def add_section(
    session_factory: async_sessionmaker,
    class_id: UUID,
    name: str,
    capacity: int = 30,
) -> Section:
    async with session_factory() as s:
        section = Section(class_id=class_id, name=name, capacity=capacity, current_strength=0)
        s.add(section)
        await s.commit()
        await s.refresh(section)
        return section


def student_payload(
    class_id: UUID,
    section_id: UUID,
    admission_number: str = "A1001",
    email: Optional[str] = None,
    roll_number: int = 1,
    first_name: str = "Asha",
    last_name: str = "Rao",
) -> dict:
    return {
        "admission_number": admission_number,
        "email": email or f"{admission_number.lower()}@students.example.com",
        "password": DEFAULT_PASSWORD,
        "first_name": first_name,
        "last_name": last_name,
        "date_of_birth": "2013-04-12",
        "gender": "female",
        "nationality": "Indian",
        "address": "12 MG Road, Pune",
        "class_id": str(class_id),
        "section_id": str(section_id),
        "roll_number": roll_number,
        "admission_date": "2024-06-01",
    }


async def create_student(client: AsyncClient, headers: Dict[str, str], **kwargs) -> dict:
    response = await client.post("/api/v1/create-student", json=student_payload(**kwargs), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["student"]


