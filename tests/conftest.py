import os

# Settings are read at import time, so the environment has to be in place first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import date  # noqa: E402
from types import SimpleNamespace  # noqa: E402
from typing import AsyncGenerator, Dict  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from schoolhub.auth.models import User  # noqa: E402
from schoolhub.core.models import AcademicYear, SchoolClass, Section  # noqa: E402
from schoolhub.db.session import Base, get_db  # noqa: E402
from schoolhub.main import app  # noqa: E402

from helpers import auth_headers, make_user  # noqa: E402


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database per test. One shared connection so every session sees the same data."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy own BEGIN so SAVEPOINT / ROLLBACK TO behave as on PostgreSQL
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture()
async def client(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, one DB session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def admin(session_factory: async_sessionmaker) -> User:
    return await make_user(session_factory, "admin@school.example.com", "admin")


@pytest.fixture()
def admin_headers(admin: User) -> Dict[str, str]:
    return auth_headers(admin)


@pytest.fixture()
async def school(session_factory: async_sessionmaker) -> SimpleNamespace:
    """Current academic year, Grade 5 and Grade 6, one section A (capacity 30) in each."""
    async with session_factory() as s:
        year = AcademicYear(
            name="2024-2025",
            start_date=date(2024, 6, 1),
            end_date=date(2025, 3, 31),
            is_current=True,
        )
        s.add(year)
        await s.flush()
        grade5 = SchoolClass(name="Grade 5", level=5, capacity=60, academic_year_id=year.id)
        grade6 = SchoolClass(name="Grade 6", level=6, capacity=60, academic_year_id=year.id)
        s.add_all([grade5, grade6])
        await s.flush()
        g5a = Section(class_id=grade5.id, name="A", capacity=30, current_strength=0)
        g6a = Section(class_id=grade6.id, name="A", capacity=30, current_strength=0)
        s.add_all([g5a, g6a])
        await s.commit()
        return SimpleNamespace(
            year_id=year.id,
            grade5_id=grade5.id,
            grade6_id=grade6.id,
            g5a_id=g5a.id,
            g6a_id=g6a.id,
        )
