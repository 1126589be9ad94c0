"""Enrollment & progress tracker.

Owns the learning state of a student in a course:

  enrollment -> lesson progress rows -> aggregate progress -> certificate

Invariants kept by ``mark_lesson_completed``:

  - progress == round(100 * completed_lessons / total_lessons), half up,
    and 0 for a course with no lessons
  - completed is true exactly when progress == 100
  - completed_at is stamped once, on the transition to completed
  - a completed enrollment has exactly one certificate

All steps of a completion run in the caller's transaction (one request,
one session).  The enrollment row is read ``FOR UPDATE`` first, so two
completions of the same enrollment serialize on PostgreSQL; SQLite gets
the same effect from BEGIN IMMEDIATE.  The unique constraints on
progreso_lecciones and certificados back that up on any database.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from course_platform.core.errors import (
    AlreadyEnrolledError,
    AuthenticationError,
    NotEnrolledError,
    NotFoundError,
)
from course_platform.core.metrics import (
    CERTIFICATES_ISSUED,
    ENROLLMENT_EVENTS,
    LESSON_COMPLETIONS,
)
from course_platform.models.enrollment import (
    CertificateDetails,
    CompletionResult,
    CourseProgress,
    EnrolledCourse,
    Enrollment,
)
from course_platform.repos.course_repo import CourseRepo
from course_platform.repos.enrollment_repo import EnrollmentRepo
from course_platform.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def compute_progress(done: int, total: int) -> int:
    """Percentage of *done* over *total*, rounded half up; 0 when total is 0."""
    if total <= 0:
        return 0
    done = min(max(done, 0), total)
    return (200 * done + total) // (2 * total)


def certificate_code(user_id: int, course_id: int, issued_at: datetime) -> str:
    epoch_ms = int(issued_at.timestamp() * 1000)
    return f"CERT-{user_id}-{course_id}-{epoch_ms}-{secrets.token_hex(4)}"


# --- enrollment ---


async def enroll(
    session: AsyncSession, user_id: int, course_id: int, *, now: Clock = _utcnow
) -> Enrollment:
    # Tokens outlive deleted accounts; the insert would fail on the user FK.
    if await UserRepo(session).get_by_id(user_id) is None:
        raise AuthenticationError("User no longer exists")
    if not await CourseRepo(session).exists(course_id):
        raise NotFoundError("Course not found")

    repo = EnrollmentRepo(session)
    if await repo.get(user_id, course_id) is not None:
        logger.warning(
            "Duplicate enrollment  user_id=%s course_id=%s", user_id, course_id
        )
        raise AlreadyEnrolledError()
    try:
        enrollment = await repo.add(
            user_id=user_id, course_id=course_id, enrolled_at=now()
        )
    except ValueError:
        raise AlreadyEnrolledError() from None

    ENROLLMENT_EVENTS.labels(event="enrolled").inc()
    logger.info("Enrolled  user_id=%s course_id=%s", user_id, course_id)
    return enrollment


async def unenroll(session: AsyncSession, user_id: int, course_id: int) -> None:
    """Delete the enrollment; lesson progress and certificate cascade with it."""
    if not await EnrollmentRepo(session).delete(user_id, course_id):
        raise NotFoundError("You are not enrolled in this course")

    ENROLLMENT_EVENTS.labels(event="unenrolled").inc()
    logger.info("Unenrolled  user_id=%s course_id=%s", user_id, course_id)


async def list_my_courses(session: AsyncSession, user_id: int) -> list[EnrolledCourse]:
    return await EnrollmentRepo(session).list_for_user(user_id)


# --- progress ---


async def get_course_progress(
    session: AsyncSession, user_id: int, course_id: int
) -> CourseProgress:
    repo = EnrollmentRepo(session)
    enrollment = await repo.get(user_id, course_id)
    if enrollment is None:
        raise NotEnrolledError()

    outline = await CourseRepo(session).get_outline(course_id)
    if outline is None:
        raise NotFoundError("Course not found")

    done = await repo.completed_lesson_ids(enrollment.id)
    return CourseProgress(
        outline=outline, enrollment=enrollment, completed_lessons=done
    )


async def mark_lesson_completed(
    session: AsyncSession,
    user_id: int,
    course_id: int,
    lesson_id: int,
    *,
    now: Clock = _utcnow,
) -> CompletionResult:
    """Record a finished lesson and bring the enrollment up to date.

    Safe to repeat: a second call for the same lesson leaves the done
    count, completed_at and the certificate as they were.
    """
    enrollments = EnrollmentRepo(session)
    courses = CourseRepo(session)

    enrollment = await enrollments.get(user_id, course_id, for_update=True)
    if enrollment is None:
        logger.warning(
            "Completion rejected, not enrolled  user_id=%s course_id=%s",
            user_id,
            course_id,
        )
        raise NotEnrolledError()

    if not await courses.lesson_in_course(lesson_id, course_id):
        raise NotFoundError("Lesson not found in this course")

    stamp = now()
    await enrollments.upsert_lesson_progress(
        enrollment_id=enrollment.id, lesson_id=lesson_id, completed_at=stamp
    )
    LESSON_COMPLETIONS.inc()

    total = await courses.count_lessons(course_id)
    done = await enrollments.count_completed_lessons(enrollment.id, course_id)
    progress = compute_progress(done, total)
    completed = progress == 100

    completed_at = enrollment.completed_at
    if completed and not enrollment.completed:
        completed_at = stamp
    elif not completed:
        completed_at = None

    await enrollments.update_progress(
        enrollment.id, progress=progress, completed=completed, completed_at=completed_at
    )

    code = None
    if completed:
        code = await _issue_certificate(enrollments, enrollment, stamp)

    logger.info(
        "Lesson completed  user_id=%s course_id=%s lesson_id=%s progress=%d/%d=%d%%",
        user_id,
        course_id,
        lesson_id,
        done,
        total,
        progress,
    )
    return CompletionResult(
        progress=progress, completed=completed, certificate_code=code
    )


async def _issue_certificate(
    repo: EnrollmentRepo, enrollment: Enrollment, issued_at: datetime
) -> str:
    existing = await repo.get_certificate(enrollment.id)
    if existing is not None:
        return existing.code

    code = certificate_code(enrollment.user_id, enrollment.course_id, issued_at)
    cert, created = await repo.insert_certificate(
        enrollment_id=enrollment.id, code=code, issued_at=issued_at
    )
    if created:
        CERTIFICATES_ISSUED.inc()
        logger.info(
            "Certificate issued  user_id=%s course_id=%s code=%s",
            enrollment.user_id,
            enrollment.course_id,
            cert.code,
        )
    return cert.code


# --- certificates ---


async def get_certificate(
    session: AsyncSession, user_id: int, course_id: int
) -> CertificateDetails:
    details = await EnrollmentRepo(session).certificate_details(user_id, course_id)
    if details is None:
        raise NotFoundError("No certificate available yet, complete the course first")
    return details


async def list_certificates(
    session: AsyncSession, user_id: int
) -> list[CertificateDetails]:
    return await EnrollmentRepo(session).list_certificates(user_id)
