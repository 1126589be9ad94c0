"""Enrollment and progress tracker, exercised against a real database.

Each ``factory.begin()`` block stands in for one request transaction.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from pathlib import Path
from datetime import UTC, datetime, timedelta

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from course_platform.core.errors import (
    AlreadyEnrolledError,
    AuthenticationError,
    NotEnrolledError,
    NotFoundError,
)
from course_platform.db.tables import (
    CertificateRow,
    EnrollmentRow,
    LessonProgressRow,
)
from course_platform.models.course import LessonDraft, SectionDraft
from course_platform.repos.course_repo import CourseRepo
from course_platform.repos.enrollment_repo import EnrollmentRepo
from course_platform.services import auth_service, course_service, progress_service
from course_platform.services.progress_service import certificate_code, compute_progress
from tests.conftest import run_with_db

Factory = async_sessionmaker[AsyncSession]


def _ticking_clock(start: datetime | None = None) -> Iterator[datetime]:
    now = start or datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
    while True:
        yield now
        now += timedelta(minutes=1)


async def _seed(
    factory: Factory, lessons_per_section: tuple[int, ...] = (2,)
) -> tuple[int, int, list[int]]:
    """Create a student and a course; returns (user_id, course_id, lesson_ids)."""
    async with factory.begin() as session:
        user = await auth_service.register_user(
            session, name="Ana", email="ana@example.com", password="secret-pass"
        )
        course = await course_service.create_course_with_sections(
            session,
            title="Python",
            description="Intro",
            sections=[
                SectionDraft(
                    subtitle=f"Section {s}",
                    lessons=tuple(LessonDraft(title=f"L{s}.{n}") for n in range(count)),
                )
                for s, count in enumerate(lessons_per_section, start=1)
            ],
        )
        outline = await course_service.get_outline(session, course.id)
    lesson_ids = [lesson.id for s in outline.sections for lesson in s.lessons]
    return user.id, course.id, lesson_ids


async def _count(factory: Factory, table) -> int:
    async with factory() as session:
        stmt = select(func.count()).select_from(table)
        return (await session.execute(stmt)).scalar_one()


async def _complete(
    factory: Factory, user_id: int, course_id: int, lesson_id: int, **kw
):
    async with factory.begin() as session:
        return await progress_service.mark_lesson_completed(
            session, user_id, course_id, lesson_id, **kw
        )


async def _enroll(factory: Factory, user_id: int, course_id: int) -> None:
    async with factory.begin() as session:
        await progress_service.enroll(session, user_id, course_id)


async def _enrollment(factory: Factory, user_id: int, course_id: int):
    async with factory() as session:
        return await EnrollmentRepo(session).get(user_id, course_id)


# ---- compute_progress / certificate_code ----


@pytest.mark.parametrize(
    ("done", "total", "expected"),
    [
        (0, 0, 0),
        (3, 0, 0),
        (0, 2, 0),
        (1, 2, 50),
        (2, 2, 100),
        (1, 3, 33),
        (2, 3, 67),
        (1, 8, 13),  # 12.5 rounds half up
        (1, 200, 1),  # 0.5 rounds half up
        (5, 4, 100),
        (-1, 4, 0),
    ],
)
def test_compute_progress(done: int, total: int, expected: int) -> None:
    assert compute_progress(done, total) == expected


def test_certificate_code_is_unique_and_names_the_pair() -> None:
    issued = datetime(2026, 3, 1, tzinfo=UTC)
    a = certificate_code(7, 3, issued)
    b = certificate_code(7, 3, issued)
    assert a != b
    assert a.startswith(f"CERT-7-3-{int(issued.timestamp() * 1000)}-")


# ---- enrollment ----


def test_enroll_twice_conflicts_and_keeps_one_row() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, _ = await _seed(factory)
        await _enroll(factory, user_id, course_id)
        with pytest.raises(AlreadyEnrolledError):
            await _enroll(factory, user_id, course_id)
        assert await _count(factory, EnrollmentRow) == 1

        enrollment = await _enrollment(factory, user_id, course_id)
        assert enrollment.progress == 0
        assert enrollment.completed is False

    run_with_db(scenario)


def test_enroll_unknown_course_is_not_found() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, _, _ = await _seed(factory)
        with pytest.raises(NotFoundError, match="Course not found"):
            await _enroll(factory, user_id, 999)

    run_with_db(scenario)


def test_enroll_with_deleted_user_is_rejected() -> None:
    async def scenario(factory: Factory) -> None:
        _, course_id, _ = await _seed(factory)
        with pytest.raises(AuthenticationError, match="User no longer exists"):
            await _enroll(factory, 999, course_id)
        assert await _count(factory, EnrollmentRow) == 0

    run_with_db(scenario)


def test_concurrent_enrollments_keep_one_row(tmp_path: Path) -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, _ = await _seed(factory)
        results = await asyncio.gather(
            _enroll(factory, user_id, course_id),
            _enroll(factory, user_id, course_id),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyEnrolledError)
        assert await _count(factory, EnrollmentRow) == 1

    run_with_db(scenario, f"sqlite+aiosqlite:///{tmp_path / 'courses.db'}")


def test_unenroll_when_not_enrolled_is_not_found() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, _ = await _seed(factory)
        async with factory.begin() as session:
            with pytest.raises(NotFoundError):
                await progress_service.unenroll(session, user_id, course_id)

    run_with_db(scenario)


# ---- lesson completion ----


def test_two_lesson_course_scenario() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (l1, l2) = await _seed(factory, (2,))
        await _enroll(factory, user_id, course_id)

        first = await _complete(factory, user_id, course_id, l1)
        assert (first.progress, first.completed, first.certificate_code) == (
            50,
            False,
            None,
        )

        second = await _complete(factory, user_id, course_id, l2)
        assert second.progress == 100
        assert second.completed is True
        assert second.certificate_code

        again = await _complete(factory, user_id, course_id, l2)
        assert again.progress == 100
        assert again.completed is True
        assert again.certificate_code == second.certificate_code
        assert await _count(factory, CertificateRow) == 1

    run_with_db(scenario)


def test_progress_ignores_order_and_duplicates() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (l1, l2, l3) = await _seed(factory, (1, 2))
        await _enroll(factory, user_id, course_id)

        seen = []
        for lesson_id in (l2, l2, l1, l3, l1):
            result = await _complete(factory, user_id, course_id, lesson_id)
            seen.append(result.progress)

        assert seen == [33, 33, 67, 100, 100]
        assert await _count(factory, LessonProgressRow) == 3

        enrollment = await _enrollment(factory, user_id, course_id)
        assert enrollment.progress == 100

    run_with_db(scenario)


def test_completed_at_is_stamped_once() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (only,) = await _seed(factory, (1,))
        await _enroll(factory, user_id, course_id)
        clock = _ticking_clock()

        await _complete(factory, user_id, course_id, only, now=lambda: next(clock))
        first = await _enrollment(factory, user_id, course_id)
        await _complete(factory, user_id, course_id, only, now=lambda: next(clock))
        second = await _enrollment(factory, user_id, course_id)

        assert first.completed_at is not None
        assert second.completed_at == first.completed_at

    run_with_db(scenario)


def test_completion_requires_enrollment() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (l1, _) = await _seed(factory)
        with pytest.raises(NotEnrolledError):
            await _complete(factory, user_id, course_id, l1)
        assert await _count(factory, LessonProgressRow) == 0

    run_with_db(scenario)


def test_lesson_from_another_course_is_rejected() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, _ = await _seed(factory)
        async with factory.begin() as session:
            other = await course_service.create_course_with_sections(
                session,
                title="Other",
                description="Elsewhere",
                sections=[
                    SectionDraft(subtitle="S", lessons=(LessonDraft(title="X"),))
                ],
            )
            foreign = (await course_service.get_outline(session, other.id)).sections[0]
        await _enroll(factory, user_id, course_id)

        with pytest.raises(NotFoundError, match="Lesson not found in this course"):
            await _complete(factory, user_id, course_id, foreign.lessons[0].id)

        enrollment = await _enrollment(factory, user_id, course_id)
        assert enrollment.progress == 0

    run_with_db(scenario)


def test_zero_lesson_course_never_completes() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, lesson_ids = await _seed(factory, ())
        assert lesson_ids == []
        await _enroll(factory, user_id, course_id)

        async with factory() as session:
            view = await progress_service.get_course_progress(
                session, user_id, course_id
            )
            assert view.enrollment.progress == 0
            assert view.enrollment.completed is False
            with pytest.raises(NotFoundError):
                await progress_service.get_certificate(session, user_id, course_id)

    run_with_db(scenario)


def test_new_lesson_reopens_course_but_keeps_certificate() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (only,) = await _seed(factory, (1,))
        await _enroll(factory, user_id, course_id)
        done = await _complete(factory, user_id, course_id, only)

        async with factory.begin() as session:
            outline = await course_service.get_outline(session, course_id)
            await CourseRepo(session).add_lesson(
                section_id=outline.sections[0].id,
                title="Bonus",
                content="",
                order=2,
                duration=0,
            )

        result = await _complete(factory, user_id, course_id, only)
        assert (result.progress, result.completed, result.certificate_code) == (
            50,
            False,
            None,
        )
        enrollment = await _enrollment(factory, user_id, course_id)
        assert enrollment.completed_at is None

        async with factory() as session:
            cert = await progress_service.get_certificate(session, user_id, course_id)
        assert cert.code == done.certificate_code

    run_with_db(scenario)


# ---- certificates ----


def test_certificate_exists_only_after_completion() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (l1, l2) = await _seed(factory)
        await _enroll(factory, user_id, course_id)
        await _complete(factory, user_id, course_id, l1)

        async with factory() as session:
            with pytest.raises(NotFoundError, match="complete the course first"):
                await progress_service.get_certificate(session, user_id, course_id)
            assert await progress_service.list_certificates(session, user_id) == []

        result = await _complete(factory, user_id, course_id, l2)

        async with factory() as session:
            cert = await progress_service.get_certificate(session, user_id, course_id)
            listed = await progress_service.list_certificates(session, user_id)
        assert cert.code == result.certificate_code
        assert cert.student_name == "Ana"
        assert cert.course_title == "Python"
        assert [c.code for c in listed] == [cert.code]

    run_with_db(scenario)


def test_insert_certificate_is_insert_or_fetch() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, _ = await _seed(factory)
        await _enroll(factory, user_id, course_id)
        enrollment = await _enrollment(factory, user_id, course_id)
        issued = datetime(2026, 3, 1, tzinfo=UTC)

        async with factory.begin() as session:
            repo = EnrollmentRepo(session)
            first, created = await repo.insert_certificate(
                enrollment_id=enrollment.id, code="CERT-A", issued_at=issued
            )
            second, created_again = await repo.insert_certificate(
                enrollment_id=enrollment.id, code="CERT-B", issued_at=issued
            )

        assert created is True
        assert created_again is False
        assert first.code == second.code == "CERT-A"
        assert await _count(factory, CertificateRow) == 1

    run_with_db(scenario)


def test_concurrent_final_completions_share_one_certificate(tmp_path: Path) -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (lesson_id,) = await _seed(factory, (1,))
        await _enroll(factory, user_id, course_id)
        before = REGISTRY.get_sample_value("certificates_issued_total") or 0

        first, second = await asyncio.gather(
            _complete(factory, user_id, course_id, lesson_id),
            _complete(factory, user_id, course_id, lesson_id),
        )

        assert first.completed and second.completed
        assert first.certificate_code is not None
        assert first.certificate_code == second.certificate_code
        assert await _count(factory, CertificateRow) == 1
        assert await _count(factory, LessonProgressRow) == 1
        after = REGISTRY.get_sample_value("certificates_issued_total") or 0
        assert after - before == 1

    run_with_db(scenario, f"sqlite+aiosqlite:///{tmp_path / 'courses.db'}")


# ---- unenroll ----


def test_unenroll_clears_progress_and_certificate() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (l1, l2) = await _seed(factory)
        await _enroll(factory, user_id, course_id)
        await _complete(factory, user_id, course_id, l1)
        await _complete(factory, user_id, course_id, l2)

        async with factory.begin() as session:
            await progress_service.unenroll(session, user_id, course_id)

        async with factory() as session:
            with pytest.raises(NotEnrolledError):
                await progress_service.get_course_progress(session, user_id, course_id)
        assert await _count(factory, LessonProgressRow) == 0
        assert await _count(factory, CertificateRow) == 0

        await _enroll(factory, user_id, course_id)
        assert (await _enrollment(factory, user_id, course_id)).progress == 0
        result = await _complete(factory, user_id, course_id, l1)
        assert result.progress == 50

    run_with_db(scenario)


# ---- read views ----


def test_course_progress_marks_completed_lessons() -> None:
    async def scenario(factory: Factory) -> None:
        user_id, course_id, (l1, l2) = await _seed(factory)
        await _enroll(factory, user_id, course_id)
        await _complete(factory, user_id, course_id, l2)

        async with factory() as session:
            view = await progress_service.get_course_progress(
                session, user_id, course_id
            )
            mine = await progress_service.list_my_courses(session, user_id)

        assert view.completed_lessons == frozenset({l2})
        assert view.enrollment.progress == 50
        assert [lesson.id for lesson in view.outline.sections[0].lessons] == [l1, l2]
        assert [(m.course.id, m.enrollment.progress) for m in mine] == [(course_id, 50)]

    run_with_db(scenario)
