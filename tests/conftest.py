import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import uuid
from datetime import date
from typing import AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.auth.models import User
from app.auth.security import create_access_token
from app.core.models import AcademicYear, SchoolClass, Tenant
from app.db.session import Base, get_db


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT (begin_nested) works on SQLite."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test; StaticPool keeps the single connection alive."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    _enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override the FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def school(db_session: AsyncSession) -> Dict[str, object]:
    """A tenant with two classes and a 2025 academic year."""
    tenant = Tenant(organization_code="SCH-A3K9", organization_name="Harare Primary")
    db_session.add(tenant)
    await db_session.flush()

    academic_year = AcademicYear(
        tenant_id=tenant.id,
        name="2025",
        start_date=date(2025, 1, 13),
        end_date=date(2025, 12, 5),
        is_current=True,
    )
    db_session.add(academic_year)
    for order, name in enumerate(("Grade 5A", "Grade 5B"), start=1):
        db_session.add(SchoolClass(tenant_id=tenant.id, name=name, display_order=order))
    await db_session.commit()
    return {"tenant": tenant, "academic_year": academic_year}


async def _make_user(db_session: AsyncSession, tenant_id: uuid.UUID, role: str) -> User:
    user = User(
        tenant_id=tenant_id,
        full_name="School Admin",
        email=f"{role.lower()}@harareprimary.org",
        password_hash="not-used-in-tests",
        role=role,
        status="ACTIVE",
    )
    db_session.add(user)
    await db_session.commit()
    return user


def _bearer(user: User) -> Dict[str, str]:
    token = create_access_token(
        subject={
            "sub": str(user.id),
            "user_id": str(user.id),
            "tenant_id": str(user.tenant_id),
            "role": user.role,
        }
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
async def admin_headers(db_session: AsyncSession, school: Dict[str, object]) -> Dict[str, str]:
    user = await _make_user(db_session, school["tenant"].id, "SUPER_ADMIN")
    return _bearer(user)


@pytest.fixture()
async def teacher_headers(db_session: AsyncSession, school: Dict[str, object]) -> Dict[str, str]:
    """A user whose role has no student create permission."""
    user = await _make_user(db_session, school["tenant"].id, "TEACHER")
    return _bearer(user)
