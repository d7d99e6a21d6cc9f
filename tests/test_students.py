import io
from datetime import date
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from openpyxl import Workbook
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from schoolhub.auth.models import User
from schoolhub.core.models import ActivityLog, Student

from helpers import (
    DEFAULT_PASSWORD,
    add_section,
    create_student,
    get_section,
    set_strength,
    student_payload,
)


async def _count(session_factory: async_sessionmaker, model) -> int:
    async with session_factory() as s:
        return (await s.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_create_student_takes_one_seat(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)

    assert student["status"] == "active"
    assert student["admission_number"] == "A1001"
    assert student["email"] == "a1001@students.example.com"
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 1
    assert (await get_section(session_factory, school.g6a_id)).current_strength == 0

    async with session_factory() as s:
        user = await s.get(User, UUID(student["user_id"]))
        assert user.role == "student"
        assert user.is_active is True
        log = (await s.execute(select(ActivityLog).where(ActivityLog.action == "CREATE"))).scalar_one()
        assert log.module == "STUDENT"
        assert log.description == "Created student: Asha Rao"


@pytest.mark.asyncio
async def test_created_student_can_login(client: AsyncClient, admin_headers, school) -> None:
    await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "a1001@students.example.com", "password": DEFAULT_PASSWORD},
    )
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "student"


@pytest.mark.asyncio
async def test_duplicate_admission_number_changes_nothing(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    students_before = await _count(session_factory, Student)
    users_before = await _count(session_factory, User)

    response = await client.post(
        "/api/v1/create-student",
        json=student_payload(school.grade5_id, school.g5a_id, email="other@students.example.com"),
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Admission number already exists"}
    assert await _count(session_factory, Student) == students_before
    assert await _count(session_factory, User) == users_before
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 1


@pytest.mark.asyncio
async def test_duplicate_email_rejected(client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school) -> None:
    await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    response = await client.post(
        "/api/v1/create-student",
        json=student_payload(
            school.grade5_id, school.g5a_id, admission_number="A1002", email="A1001@students.example.com"
        ),
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Email already exists"
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 1


@pytest.mark.asyncio
async def test_section_of_other_class_rejected(client: AsyncClient, admin_headers, school) -> None:
    response = await client.post(
        "/api/v1/create-student",
        json=student_payload(school.grade5_id, school.g6a_id),
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid class or section"


@pytest.mark.asyncio
async def test_full_section_rejects_create(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    await set_strength(session_factory, school.g5a_id, 30)
    response = await client.post(
        "/api/v1/create-student",
        json=student_payload(school.grade5_id, school.g5a_id),
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Section is full"
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 30
    assert await _count(session_factory, Student) == 0
    # Only the admin account exists
    assert await _count(session_factory, User) == 1


@pytest.mark.asyncio
async def test_create_student_validation_error_envelope(client: AsyncClient, admin_headers, school) -> None:
    payload = student_payload(school.grade5_id, school.g5a_id)
    del payload["first_name"]
    response = await client.post("/api/v1/create-student", json=payload, headers=admin_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "first_name" in body["message"]


@pytest.mark.asyncio
async def test_list_students_pagination_and_search(client: AsyncClient, admin_headers, school) -> None:
    await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id,
                         admission_number="A1001", first_name="Asha", last_name="Rao")
    await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id,
                         admission_number="A1002", first_name="Vikram", last_name="Singh", roll_number=2)
    await create_student(client, admin_headers, class_id=school.grade6_id, section_id=school.g6a_id,
                         admission_number="B2001", first_name="Meera", last_name="Rao")

    page = await client.get("/api/v1/students", params={"page": 1, "limit": 2}, headers=admin_headers)
    assert page.status_code == 200
    body = page.json()
    assert len(body["students"]) == 2
    assert body["pagination"] == {"total": 3, "page": 1, "pages": 2}

    by_name = await client.get("/api/v1/students", params={"search": "rao"}, headers=admin_headers)
    assert {s["admission_number"] for s in by_name.json()["students"]} == {"A1001", "B2001"}

    by_admission = await client.get("/api/v1/students", params={"search": "a100"}, headers=admin_headers)
    assert by_admission.json()["pagination"]["total"] == 2

    by_class = await client.get(
        "/api/v1/students", params={"class_id": str(school.grade6_id)}, headers=admin_headers
    )
    assert [s["admission_number"] for s in by_class.json()["students"]] == ["B2001"]

    by_status = await client.get("/api/v1/students", params={"status": "graduated"}, headers=admin_headers)
    assert by_status.json()["pagination"] == {"total": 0, "page": 1, "pages": 0}


@pytest.mark.asyncio
async def test_get_student(client: AsyncClient, admin_headers, school) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    found = await client.get(f"/api/v1/student/{student['id']}", headers=admin_headers)
    assert found.status_code == 200
    assert found.json()["student"]["id"] == student["id"]

    missing = await client.get(f"/api/v1/student/{uuid4()}", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Student not found"}


@pytest.mark.asyncio
async def test_update_moves_seat_between_sections(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    g5b = await add_section(session_factory, school.grade5_id, "B")
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)

    moved = await client.put(
        f"/api/v1/update-student/{student['id']}",
        json={"section_id": str(g5b.id), "phone": "+91 98000 00000"},
        headers=admin_headers,
    )
    assert moved.status_code == 200, moved.text
    assert moved.json()["student"]["section_id"] == str(g5b.id)
    assert moved.json()["student"]["phone"] == "+91 98000 00000"
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 0
    assert (await get_section(session_factory, g5b.id)).current_strength == 1


@pytest.mark.asyncio
async def test_update_into_full_section_rejected(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    g5b = await add_section(session_factory, school.grade5_id, "B", capacity=1)
    await set_strength(session_factory, g5b.id, 1)
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)

    response = await client.put(
        f"/api/v1/update-student/{student['id']}",
        json={"section_id": str(g5b.id)},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Section is full"
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 1
    assert (await get_section(session_factory, g5b.id)).current_strength == 1


@pytest.mark.asyncio
async def test_deactivate_and_reactivate(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    url = f"/api/v1/update-student/{student['id']}"

    inactive = await client.put(url, json={"status": "inactive"}, headers=admin_headers)
    assert inactive.status_code == 200
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 0

    active = await client.put(url, json={"status": "active"}, headers=admin_headers)
    assert active.status_code == 200
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 1

    graduated = await client.put(url, json={"status": "graduated"}, headers=admin_headers)
    assert graduated.status_code == 400
    assert graduated.json()["message"] == "Use the graduate operation to mark a student graduated"


@pytest.mark.asyncio
async def test_terminal_status_cannot_change(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    graduated = await client.post(
        "/api/v1/graduate-students", json={"student_ids": [student["id"]]}, headers=admin_headers
    )
    assert graduated.status_code == 200

    response = await client.put(
        f"/api/v1/update-student/{student['id']}", json={"status": "active"}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Cannot change status of a graduated student"
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 0


@pytest.mark.asyncio
async def test_update_email_syncs_login(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    response = await client.put(
        f"/api/v1/update-student/{student['id']}",
        json={"email": "Asha.Rao@students.example.com"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["student"]["email"] == "asha.rao@students.example.com"
    async with session_factory() as s:
        user = await s.get(User, UUID(student["user_id"]))
        assert user.email == "asha.rao@students.example.com"


@pytest.mark.asyncio
async def test_delete_student_releases_seat_and_account(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)

    response = await client.delete(f"/api/v1/delete-student/{student['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Student deleted successfully"}
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 0
    async with session_factory() as s:
        assert await s.get(Student, UUID(student["id"])) is None
        assert await s.get(User, UUID(student["user_id"])) is None

    again = await client.delete(f"/api/v1/delete-student/{student['id']}", headers=admin_headers)
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_bulk_upload_continues_past_failures(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    rows = [
        student_payload(school.grade5_id, school.g5a_id, admission_number="A1001"),
        student_payload(school.grade5_id, school.g5a_id, admission_number="A1001", email="dup@students.example.com"),
        student_payload(school.grade5_id, school.g6a_id, admission_number="A1003"),
        student_payload(school.grade5_id, school.g5a_id, admission_number="A1004", roll_number=2),
    ]
    response = await client.post("/api/v1/bulk-upload-students", json={"students": rows}, headers=admin_headers)
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["message"] == "2 students uploaded successfully"
    assert [s["admission_number"] for s in body["successful"]] == ["A1001", "A1004"]
    assert [(f["index"], f["reason"]) for f in body["failed"]] == [
        (1, "Admission number already exists"),
        (2, "Invalid class or section"),
    ]
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 2
    assert await _count(session_factory, Student) == 2
    # Admin plus the two student accounts
    assert await _count(session_factory, User) == 3


@pytest.mark.asyncio
async def test_bulk_upload_stops_at_capacity(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    await set_strength(session_factory, school.g5a_id, 29)
    rows = [
        student_payload(school.grade5_id, school.g5a_id, admission_number=f"A10{i:02d}", roll_number=i + 1)
        for i in range(3)
    ]
    response = await client.post("/api/v1/bulk-upload-students", json={"students": rows}, headers=admin_headers)
    body = response.json()
    assert len(body["successful"]) == 1
    assert [f["reason"] for f in body["failed"]] == ["Section is full", "Section is full"]
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 30


def _workbook_bytes(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append([
        "admission_number", "email", "password", "first_name", "last_name", "date_of_birth", "gender",
        "nationality", "address", "class_id", "section_id", "roll_number", "admission_date", "parent_ids",
    ])
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.mark.asyncio
async def test_bulk_upload_excel(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    content = _workbook_bytes([
        [
            "X3001", "x3001@students.example.com", DEFAULT_PASSWORD, "Kiran", "Das", date(2013, 1, 5), "Male",
            "Indian", "4 Park Street", str(school.grade5_id), str(school.g5a_id), 1, date(2024, 6, 1), "P1, P2",
        ],
        [
            "X3002", "x3002@students.example.com", DEFAULT_PASSWORD, None, "Das", date(2013, 2, 5), "female",
            "Indian", "4 Park Street", str(school.grade5_id), str(school.g5a_id), 2, date(2024, 6, 1), None,
        ],
    ])
    response = await client.post(
        "/api/v1/bulk-upload-students/excel",
        files={
            "file": (
                "students.xlsx",
                content,
                "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            )
        },
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert len(body["successful"]) == 1
    created = body["successful"][0]
    assert created["gender"] == "male"
    assert created["date_of_birth"] == "2013-01-05"
    assert created["parent_ids"] == ["P1", "P2"]
    assert len(body["failed"]) == 1
    assert body["failed"][0]["index"] == 1
    assert body["failed"][0]["admission_number"] == "X3002"
    assert "first_name" in body["failed"][0]["reason"]
    assert (await get_section(session_factory, school.g5a_id)).current_strength == 1


@pytest.mark.asyncio
async def test_bulk_upload_excel_rejects_other_files(client: AsyncClient, admin_headers) -> None:
    response = await client.post(
        "/api/v1/bulk-upload-students/excel",
        files={"file": ("students.csv", b"admission_number\nA1", "text/csv")},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "File must be an Excel file (.xlsx)"


@pytest.mark.asyncio
async def test_bulk_update(client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school) -> None:
    first = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id,
                                 admission_number="A1001")
    second = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id,
                                  admission_number="A1002", roll_number=2)

    response = await client.put(
        "/api/v1/bulk-update-students",
        json={"student_ids": [first["id"], second["id"]], "updates": {"religion": "Hindu", "nationality": "Indian"}},
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text
    assert response.json()["modified_count"] == 2

    async with session_factory() as s:
        religions = (await s.execute(select(Student.religion))).scalars().all()
        assert religions == ["Hindu", "Hindu"]
        log = (await s.execute(select(ActivityLog).where(ActivityLog.action == "BULK_UPDATE"))).scalar_one()
        assert log.extra == {"fields": ["nationality", "religion"]}


@pytest.mark.asyncio
async def test_bulk_update_forbidden_field(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    response = await client.put(
        "/api/v1/bulk-update-students",
        json={"student_ids": [student["id"]], "updates": {"status": "graduated"}},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Cannot update field: status"}
    async with session_factory() as s:
        assert (await s.get(Student, UUID(student["id"]))).status == "active"


@pytest.mark.asyncio
async def test_update_rejects_null_for_required_field(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    url = f"/api/v1/update-student/{student['id']}"

    response = await client.put(url, json={"first_name": None}, headers=admin_headers)
    assert response.status_code == 400
    assert "first_name cannot be null" in response.json()["message"]
    async with session_factory() as s:
        assert (await s.get(Student, UUID(student["id"]))).first_name == "Asha"

    # Nullable columns can still be cleared
    cleared = await client.put(url, json={"religion": None, "phone": None}, headers=admin_headers)
    assert cleared.status_code == 200, cleared.text
    assert cleared.json()["student"]["religion"] is None


@pytest.mark.asyncio
async def test_bulk_update_rejects_null_for_required_field(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    student = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id)
    response = await client.put(
        "/api/v1/bulk-update-students",
        json={"student_ids": [student["id"]], "updates": {"first_name": None}},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Value error, first_name cannot be null"}
    async with session_factory() as s:
        assert (await s.get(Student, UUID(student["id"]))).first_name == "Asha"


@pytest.mark.asyncio
async def test_bulk_update_cannot_change_login_email(
    client: AsyncClient, session_factory: async_sessionmaker, admin_headers, school
) -> None:
    first = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id,
                                 admission_number="A1001")
    second = await create_student(client, admin_headers, class_id=school.grade5_id, section_id=school.g5a_id,
                                  admission_number="A1002", roll_number=2)

    response = await client.put(
        "/api/v1/bulk-update-students",
        json={"student_ids": [first["id"], second["id"]], "updates": {"email": "shared@students.example.com"}},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Cannot update field: email"}

    async with session_factory() as s:
        emails = (await s.execute(select(User.email).order_by(User.email))).scalars().all()
        assert "a1001@students.example.com" in emails
        assert "a1002@students.example.com" in emails
        assert "shared@students.example.com" not in emails
