from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from helpers import make_user


@pytest.mark.asyncio
async def test_current_year_switches(client: AsyncClient, admin_headers, school) -> None:
    current = await client.get("/api/v1/academic-years/current", headers=admin_headers)
    assert current.status_code == 200
    assert current.json()["name"] == "2024-2025"

    created = await client.post(
        "/api/v1/academic-years",
        json={"name": "2025-2026", "start_date": "2025-06-01", "end_date": "2026-03-31", "is_current": True},
        headers=admin_headers,
    )
    assert created.status_code == 201, created.text
    new_id = created.json()["id"]

    listed = await client.get("/api/v1/academic-years", headers=admin_headers)
    assert [(y["name"], y["is_current"]) for y in listed.json()] == [
        ("2025-2026", True),
        ("2024-2025", False),
    ]

    switched = await client.patch(f"/api/v1/academic-years/{school.year_id}/set-current", headers=admin_headers)
    assert switched.status_code == 200
    assert switched.json()["is_current"] is True
    other = await client.get(f"/api/v1/academic-years/{new_id}", headers=admin_headers)
    assert other.json()["is_current"] is False


@pytest.mark.asyncio
async def test_no_current_year(client: AsyncClient, admin_headers) -> None:
    response = await client.get("/api/v1/academic-years/current", headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "No current academic year set"}


@pytest.mark.asyncio
async def test_academic_year_validation(client: AsyncClient, admin_headers, school) -> None:
    duplicate = await client.post(
        "/api/v1/academic-years",
        json={"name": "2024-2025", "start_date": "2024-06-01", "end_date": "2025-03-31"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["message"] == "Academic year already exists"

    backwards = await client.post(
        "/api/v1/academic-years",
        json={"name": "2030-2031", "start_date": "2031-03-31", "end_date": "2030-06-01"},
        headers=admin_headers,
    )
    assert backwards.status_code == 400
    assert backwards.json()["message"] == "end_date must be after start_date"

    in_use = await client.delete(f"/api/v1/academic-years/{school.year_id}", headers=admin_headers)
    assert in_use.status_code == 400
    assert in_use.json()["message"] == "Cannot delete academic year: it is used by classes"


@pytest.mark.asyncio
async def test_classes_ordered_by_level(client: AsyncClient, admin_headers, school) -> None:
    created = await client.post(
        "/api/v1/classes",
        json={"name": "Grade 1", "level": 1, "capacity": 80, "academic_year_id": str(school.year_id)},
        headers=admin_headers,
    )
    assert created.status_code == 201, created.text

    listed = await client.get(
        "/api/v1/classes", params={"academic_year_id": str(school.year_id)}, headers=admin_headers
    )
    assert [c["name"] for c in listed.json()] == ["Grade 1", "Grade 5", "Grade 6"]

    bad_year = await client.post(
        "/api/v1/classes",
        json={"name": "Grade 2", "level": 2, "capacity": 80, "academic_year_id": str(uuid4())},
        headers=admin_headers,
    )
    assert bad_year.status_code == 400
    assert bad_year.json()["message"] == "Invalid academic year"


@pytest.mark.asyncio
async def test_assign_class_teacher(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    teacher = await make_user(session_factory, "teacher@school.example.com", "teacher")
    accountant = await make_user(session_factory, "accounts@school.example.com", "accountant")
    url = f"/api/v1/classes/{school.grade5_id}/assign-teacher"

    assigned = await client.put(url, json={"teacher_id": str(teacher.id)}, headers=admin_headers)
    assert assigned.status_code == 200, assigned.text
    assert assigned.json()["class_teacher_id"] == str(teacher.id)

    wrong_role = await client.put(url, json={"teacher_id": str(accountant.id)}, headers=admin_headers)
    assert wrong_role.status_code == 400
    assert wrong_role.json()["message"] == "Teacher not found"


@pytest.mark.asyncio
async def test_delete_class_with_sections(client: AsyncClient, admin_headers, school) -> None:
    response = await client.delete(f"/api/v1/classes/{school.grade6_id}", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot delete class: it has sections or students"
