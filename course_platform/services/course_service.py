"""Course catalogue: listing, outlines and admin mutations.

Creation of a course together with its sections, lessons and uploaded
files happens in the caller's transaction.  Files are written to disk
before the rows that point at them and are removed again if that
transaction rolls back, whether the failure happens here or later at
COMMIT.  Deleting a course removes its files only once the delete has
committed.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from course_platform.core.errors import NotFoundError, ValidationError
from course_platform.db.engine import on_transaction_end
from course_platform.models.course import (
    COURSE_STATUSES,
    Course,
    CourseOutline,
    SectionDraft,
)
from course_platform.repos.course_repo import CourseRepo
from course_platform.services.file_storage import FileStorage, storage

logger = logging.getLogger(__name__)

_COURSE_FIELDS = ("title", "description", "level", "duration", "status")
_SECTION_FIELDS = ("subtitle", "description", "order")


def _require_text(value: str | None, message: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(message)
    return value


def _check_status(status: str) -> None:
    if status not in COURSE_STATUSES:
        raise ValidationError(f"Status must be one of {'|'.join(COURSE_STATUSES)}")


def _check_duration(duration: int | None) -> None:
    if duration is not None and duration < 0:
        raise ValidationError("Duration must not be negative")


async def list_courses(
    session: AsyncSession, *, status: str | None = None
) -> list[Course]:
    if status is not None:
        _check_status(status)
    return await CourseRepo(session).list_courses(status=status)


async def get_course(session: AsyncSession, course_id: int) -> Course:
    course = await CourseRepo(session).get(course_id)
    if course is None:
        raise NotFoundError("Course not found")
    return course


async def get_outline(session: AsyncSession, course_id: int) -> CourseOutline:
    outline = await CourseRepo(session).get_outline(course_id)
    if outline is None:
        raise NotFoundError("Course not found")
    return outline


async def create_course(
    session: AsyncSession,
    *,
    title: str | None,
    description: str | None,
    level: str | None = None,
    duration: int | None = None,
    status: str = "active",
    created_by: int | None = None,
) -> Course:
    title = _require_text(title, "Title and description are required")
    description = _require_text(description, "Title and description are required")
    _check_status(status)
    _check_duration(duration)

    course = await CourseRepo(session).add_course(
        title=title,
        description=description,
        level=level,
        duration=duration,
        status=status,
        created_by=created_by,
        created_at=datetime.now(UTC),
    )
    logger.info("Course created  course_id=%s by=%s", course.id, created_by)
    return course


async def create_course_with_sections(
    session: AsyncSession,
    *,
    title: str | None,
    description: str | None,
    sections: list[SectionDraft],
    level: str | None = None,
    duration: int | None = None,
    created_by: int | None = None,
    file_storage: FileStorage = storage,
) -> Course:
    """Create a course with ordered sections, lessons and attached files.

    Section and lesson order follow list position.  Validation runs before
    anything is written.
    """
    for draft in sections:
        _require_text(draft.subtitle, "Every section needs a subtitle")
        for lesson in draft.lessons:
            _require_text(lesson.title, "Every lesson needs a title")
            if lesson.duration < 0:
                raise ValidationError("Duration must not be negative")

    course = await create_course(
        session,
        title=title,
        description=description,
        level=level,
        duration=duration,
        created_by=created_by,
    )

    written: list[str] = []

    def _discard_files() -> None:
        if written:
            logger.warning(
                "Course creation rolled back, removing %d stored files", len(written)
            )
            file_storage.remove(written)

    on_transaction_end(session, rolled_back=_discard_files)

    repo = CourseRepo(session)
    for s_order, draft in enumerate(sections, start=1):
        section_id = await repo.add_section(
            course_id=course.id,
            subtitle=draft.subtitle.strip(),
            description=draft.description,
            order=s_order,
        )
        for l_order, lesson in enumerate(draft.lessons, start=1):
            await repo.add_lesson(
                section_id=section_id,
                title=lesson.title.strip(),
                content=lesson.content,
                order=l_order,
                duration=lesson.duration,
            )
        for upload in draft.files:
            stored = file_storage.save(upload.filename, upload.data)
            written.append(stored)
            await repo.add_file(
                section_id=section_id,
                filename=upload.filename,
                stored_path=stored,
                content_type=upload.content_type,
                size_bytes=len(upload.data),
                uploaded_at=datetime.now(UTC),
            )

    logger.info(
        "Course structure stored  course_id=%s sections=%d files=%d",
        course.id,
        len(sections),
        len(written),
    )
    return course


async def update_course(
    session: AsyncSession, course_id: int, changes: dict[str, Any]
) -> None:
    values = {k: v for k, v in changes.items() if k in _COURSE_FIELDS}
    for key in ("title", "description"):
        if key in values:
            values[key] = _require_text(
                values[key], f"{key.capitalize()} must not be empty"
            )
    if "status" in values:
        _check_status(values["status"])
    if "duration" in values:
        _check_duration(values["duration"])

    if not await CourseRepo(session).update_course(course_id, values):
        raise NotFoundError("Course not found")
    logger.info("Course updated  course_id=%s fields=%s", course_id, sorted(values))


async def delete_course(
    session: AsyncSession, course_id: int, *, file_storage: FileStorage = storage
) -> None:
    repo = CourseRepo(session)
    stored = await repo.stored_file_paths(course_id)
    if not await repo.delete_course(course_id):
        raise NotFoundError("Course not found")
    if stored:
        on_transaction_end(session, committed=lambda: file_storage.remove(stored))
    logger.info("Course deleted  course_id=%s files=%d", course_id, len(stored))


async def update_section(
    session: AsyncSession, course_id: int, section_id: int, changes: dict[str, Any]
) -> None:
    values = {k: v for k, v in changes.items() if k in _SECTION_FIELDS}
    if "subtitle" in values:
        values["subtitle"] = _require_text(
            values["subtitle"], "Subtitle must not be empty"
        )
    if "order" in values and values["order"] < 0:
        raise ValidationError("Order must not be negative")

    if not await CourseRepo(session).update_section(course_id, section_id, values):
        raise NotFoundError("Section not found")
    logger.info(
        "Section updated  course_id=%s section_id=%s fields=%s",
        course_id,
        section_id,
        sorted(values),
    )
