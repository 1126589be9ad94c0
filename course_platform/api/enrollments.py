"""Enrollment endpoints (/inscripciones)."""

from __future__ import annotations

from fastapi import APIRouter

from course_platform.api.dependencies import CurrentUser, SessionDep
from course_platform.api.schemas import EnrolledCourseOut, MessageOut
from course_platform.services import progress_service

router = APIRouter(prefix="/inscripciones", tags=["enrollments"])


@router.get("/mis-cursos", response_model=list[EnrolledCourseOut])
async def my_courses(
    principal: CurrentUser, session: SessionDep
) -> list[EnrolledCourseOut]:
    """Courses the caller is enrolled in, newest enrollment first."""
    enrolled = await progress_service.list_my_courses(session, principal.user_id)
    return [EnrolledCourseOut.from_enrolled(e) for e in enrolled]


@router.post("/{course_id}", response_model=MessageOut)
async def enroll(
    course_id: int, principal: CurrentUser, session: SessionDep
) -> MessageOut:
    await progress_service.enroll(session, principal.user_id, course_id)
    return MessageOut(message="Enrollment successful")


@router.delete("/{course_id}", response_model=MessageOut)
async def unenroll(
    course_id: int, principal: CurrentUser, session: SessionDep
) -> MessageOut:
    await progress_service.unenroll(session, principal.user_id, course_id)
    return MessageOut(message="Unenrolled from course")
