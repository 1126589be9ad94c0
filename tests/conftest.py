from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import Awaitable, Callable, Iterator
from typing import TypeVar

# Settings are read once at import time, so the test environment has to be
# in place before anything from course_platform is imported.
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="course-platform-uploads-")
os.environ.pop("REDIS_URL", None)
os.environ.pop("JWT_PRIVATE_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from course_platform.api.ratelimit import _rate_limiter  # noqa: E402
from course_platform.db.engine import (  # noqa: E402
    async_session_factory,
    build_engine,
    build_session_factory,
    create_all,
)
from course_platform.main import app  # noqa: E402
from course_platform.services import auth_service, token_service  # noqa: E402

T = TypeVar("T")

DEFAULT_PASSWORD = "secret-pass"


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Clear rate limit buckets between tests so limits don't bleed."""
    if hasattr(_rate_limiter, "_buckets"):
        _rate_limiter._buckets.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> Iterator[TestClient]:
    """TestClient with the lifespan running.

    Startup creates the schema in a fresh in-memory database and shutdown
    disposes the engine, so every test starts from empty tables.
    """
    with TestClient(app) as c:
        yield c


def mint_token(user_id: int, role: str = "student") -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=str(user_id), role=role)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def seed_user(
    client: TestClient,
    *,
    email: str,
    name: str = "Test User",
    password: str = DEFAULT_PASSWORD,
    role: str = "student",
) -> int:
    """Insert a user straight through the service layer; returns its id.

    Runs on the client's event loop, the one the app's engine lives on.
    """

    async def _seed() -> int:
        async with async_session_factory.begin() as session:
            user = await auth_service.register_user(
                session, name=name, email=email, password=password, role=role
            )
            return user.id

    assert client.portal is not None
    return client.portal.call(_seed)


@pytest.fixture
def admin_id(client: TestClient) -> int:
    return seed_user(client, email="admin@example.com", name="Admin", role="admin")


@pytest.fixture
def student_id(client: TestClient) -> int:
    return seed_user(client, email="student@example.com", name="Student Example")


@pytest.fixture
def admin_headers(admin_id: int) -> dict[str, str]:
    return bearer(mint_token(admin_id, "admin"))


@pytest.fixture
def student_headers(student_id: int) -> dict[str, str]:
    return bearer(mint_token(student_id))


def create_course(
    client: TestClient,
    admin_headers: dict[str, str],
    *,
    title: str = "Python 101",
    lessons_per_section: tuple[int, ...] = (2,),
) -> tuple[int, list[int]]:
    """Create a course with sections and lessons; returns (course_id, lesson_ids).

    Lesson ids come back in display order.
    """
    sections = [
        {
            "subtitulo": f"Section {s}",
            "descripcion": "",
            "lecciones": [
                {"titulo": f"Lesson {s}.{n}", "contenido": "...", "duracion": 5}
                for n in range(1, count + 1)
            ],
        }
        for s, count in enumerate(lessons_per_section, start=1)
    ]
    resp = client.post(
        "/cursos/crear-con-secciones",
        data={
            "titulo": title,
            "descripcion": "A course",
            "secciones": json.dumps(sections),
        },
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    course_id = resp.json()["cursoId"]

    outline = client.get(f"/cursos/completo/{course_id}", headers=admin_headers).json()
    lesson_ids = [les["id"] for s in outline["secciones"] for les in s["lecciones"]]
    return course_id, lesson_ids


# ---------------------------------------------------------------------------
# Service-level helpers (no HTTP)
# ---------------------------------------------------------------------------


def run_with_db(
    scenario: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]],
    url: str = "sqlite+aiosqlite://",
) -> T:
    """Run *scenario* against a private database, in memory by default.

    The scenario receives a session factory; each ``factory.begin()``
    block plays the part of one request transaction.
    """

    async def _main() -> T:
        engine = build_engine(url)
        await create_all(engine)
        try:
            return await scenario(build_session_factory(engine))
        finally:
            await engine.dispose()

    return asyncio.run(_main())
