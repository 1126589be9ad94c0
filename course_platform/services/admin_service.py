"""Admin reporting and user management.

Aggregate progress figures are read from ``inscripciones.progress``,
the column the tracker maintains, so they always agree with what
students see.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from course_platform.core.errors import NotFoundError, ValidationError
from course_platform.models.enrollment import EnrollmentDetail, EnrollmentSummary
from course_platform.models.user import User
from course_platform.repos.course_repo import CourseRepo
from course_platform.repos.enrollment_repo import EnrollmentRepo
from course_platform.repos.user_repo import UserRepo

logger = logging.getLogger(__name__)


async def platform_counts(session: AsyncSession) -> dict[str, int]:
    return {
        "cursos": await CourseRepo(session).count(),
        "usuarios": await UserRepo(session).count(),
        "inscripciones": await EnrollmentRepo(session).count(),
    }


async def list_users(session: AsyncSession) -> list[User]:
    return await UserRepo(session).list_all()


async def delete_user(session: AsyncSession, *, actor_id: int, user_id: int) -> None:
    if actor_id == user_id:
        raise ValidationError("You cannot delete your own account")
    if not await UserRepo(session).delete(user_id):
        raise NotFoundError("User not found")
    logger.info("User deleted  user_id=%s by=%s", user_id, actor_id)


def summarize(details: list[EnrollmentDetail]) -> EnrollmentSummary:
    total = len(details)
    progress_sum = sum(d.enrollment.progress for d in details)
    return EnrollmentSummary(
        total_students=len({d.enrollment.user_id for d in details}),
        total_enrollments=total,
        average_progress=(2 * progress_sum + total) // (2 * total) if total else 0,
        completed_enrollments=sum(1 for d in details if d.enrollment.completed),
    )


async def enrollment_report(
    session: AsyncSession,
) -> tuple[list[EnrollmentDetail], EnrollmentSummary]:
    details = await EnrollmentRepo(session).list_details()
    return details, summarize(details)
