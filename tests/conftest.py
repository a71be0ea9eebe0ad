import os
import uuid
from typing import AsyncGenerator, Callable, Dict, Optional

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from school_api.auth.models import User
from school_api.auth.security import access_token_claims, create_access_token, hash_password
from school_api.core.enums import UserRole
from school_api.core.models import ClassSubject, ClassSubjectTeacher, School, SchoolClass
from school_api.db.session import Base, get_db
from school_api.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite://"
PASSWORD = "StrongPass123"


@pytest.fixture()
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database per test; every session shares the one connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging data; requests get their own session from the same factory."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with session_factory() as session:
        yield session
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(subject=access_token_claims(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers() -> Callable[[User], Dict[str, str]]:
    return auth_headers


# ----- Factories -----
@pytest.fixture()
def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(
        role: UserRole,
        school: Optional[School] = None,
        school_class: Optional[SchoolClass] = None,
        first_name: str = "Test",
        last_name: Optional[str] = None,
        is_active: bool = True,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            first_name=first_name,
            last_name=last_name or f"User{n:03d}",
            email=f"{role.value.lower()}{n}@example.com",
            password_hash=hash_password(PASSWORD),
            role=role.value,
            is_active=is_active,
            school_id=school.id if school else None,
            class_id=school_class.id if school_class else None,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture()
def make_school(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(name: str = "Springfield High") -> School:
        counter["n"] += 1
        school = School(
            name=name,
            address="1 Main St",
            city="Springfield",
            state="IL",
            country="US",
            zip_code="62701",
            phone="+15550000000",
            email=f"school{counter['n']}@example.com",
            admin_id=uuid.uuid4(),
            academic_year="2024-2025",
            allowed_domains=[],
        )
        db_session.add(school)
        await db_session.commit()
        return school

    return _make


@pytest.fixture()
def make_class(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(
        school: School,
        class_teacher: Optional[User] = None,
        subject_teachers=(),
        subject_leads: Optional[Dict[str, User]] = None,
        grade: int = 5,
        section: Optional[str] = None,
        capacity: int = 40,
    ) -> SchoolClass:
        counter["n"] += 1
        school_class = SchoolClass(
            school_id=school.id,
            name=f"Grade {grade}",
            section=section or chr(ord("A") + counter["n"] - 1),
            grade=grade,
            class_teacher_id=class_teacher.id if class_teacher else None,
            academic_year="2024-2025",
            capacity=capacity,
            subjects=[
                ClassSubject(name=name, code=name[:4].upper(), teacher_id=lead.id)
                for name, lead in (subject_leads or {}).items()
            ],
            subject_teacher_links=[ClassSubjectTeacher(teacher_id=t.id) for t in subject_teachers],
        )
        db_session.add(school_class)
        await db_session.commit()
        return school_class

    return _make


@pytest.fixture()
async def school_setup(db_session: AsyncSession, make_school, make_user, make_class):
    """One school with an admin, two teachers, a class taught by the first and three students."""
    school = await make_school()
    admin = await make_user(UserRole.SCHOOL_ADMIN, school)
    teacher = await make_user(UserRole.TEACHER, school)
    other_teacher = await make_user(UserRole.TEACHER, school)
    school_class = await make_class(school, class_teacher=teacher)
    students = [await make_user(UserRole.STUDENT, school, school_class) for _ in range(3)]
    school.admin_id = admin.id
    await db_session.commit()
    return {
        "school": school,
        "admin": admin,
        "teacher": teacher,
        "other_teacher": other_teacher,
        "class": school_class,
        "students": students,
    }

