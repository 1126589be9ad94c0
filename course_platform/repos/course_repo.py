"""SQLAlchemy repository for the course catalogue.

Covers cursos and everything a course owns: secciones, lecciones and
archivos.  Reads return frozen dataclasses; sections, lessons and files
always come back in display order (``orden``, then id).
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from course_platform.db.tables import CourseRow, FileRow, LessonRow, SectionRow
from course_platform.models.course import (
    Course,
    CourseFile,
    CourseOutline,
    Lesson,
    Section,
)


class CourseRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- cursos ---

    async def get(self, course_id: int) -> Course | None:
        row = await self._session.get(CourseRow, course_id)
        return course_from_row(row) if row is not None else None

    async def exists(self, course_id: int) -> bool:
        stmt = select(CourseRow.id).where(CourseRow.id == course_id)
        return (await self._session.execute(stmt)).scalar_one_or_none() is not None

    async def list_courses(self, *, status: str | None = None) -> list[Course]:
        stmt = select(CourseRow).order_by(CourseRow.id)
        if status is not None:
            stmt = stmt.where(CourseRow.status == status)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [course_from_row(r) for r in rows]

    async def add_course(
        self,
        *,
        title: str,
        description: str,
        level: str | None,
        duration: int | None,
        status: str,
        created_by: int | None,
        created_at: datetime,
    ) -> Course:
        row = CourseRow(
            title=title,
            description=description,
            level=level,
            duration=duration,
            status=status,
            created_by=created_by,
            created_at=created_at,
        )
        self._session.add(row)
        await self._session.flush()
        return course_from_row(row)

    async def update_course(self, course_id: int, values: dict[str, Any]) -> bool:
        if not values:
            return await self.exists(course_id)
        stmt = update(CourseRow).where(CourseRow.id == course_id).values(**values)
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def delete_course(self, course_id: int) -> bool:
        result = await self._session.execute(
            delete(CourseRow).where(CourseRow.id == course_id)
        )
        return result.rowcount > 0

    async def count(self) -> int:
        return (
            await self._session.execute(select(func.count(CourseRow.id)))
        ).scalar_one()

    # --- secciones / lecciones / archivos ---

    async def add_section(
        self, *, course_id: int, subtitle: str, description: str, order: int
    ) -> int:
        row = SectionRow(
            course_id=course_id, subtitle=subtitle, description=description, order=order
        )
        self._session.add(row)
        await self._session.flush()
        return row.id

    async def add_lesson(
        self,
        *,
        section_id: int,
        title: str,
        content: str,
        order: int,
        duration: int,
    ) -> int:
        row = LessonRow(
            section_id=section_id,
            title=title,
            content=content,
            order=order,
            duration=duration,
        )
        self._session.add(row)
        await self._session.flush()
        return row.id

    async def add_file(
        self,
        *,
        section_id: int,
        filename: str,
        stored_path: str,
        content_type: str | None,
        size_bytes: int,
        uploaded_at: datetime,
    ) -> int:
        row = FileRow(
            section_id=section_id,
            filename=filename,
            stored_path=stored_path,
            content_type=content_type,
            size_bytes=size_bytes,
            uploaded_at=uploaded_at,
        )
        self._session.add(row)
        await self._session.flush()
        return row.id

    async def update_section(
        self, course_id: int, section_id: int, values: dict[str, Any]
    ) -> bool:
        """Update a section, scoped to its course. False when no such pair exists."""
        scope = (SectionRow.id == section_id) & (SectionRow.course_id == course_id)
        if not values:
            stmt = select(SectionRow.id).where(scope)
            return (await self._session.execute(stmt)).scalar_one_or_none() is not None
        result = await self._session.execute(
            update(SectionRow).where(scope).values(**values)
        )
        return result.rowcount > 0

    async def lesson_in_course(self, lesson_id: int, course_id: int) -> bool:
        stmt = (
            select(LessonRow.id)
            .join(SectionRow, LessonRow.section_id == SectionRow.id)
            .where(LessonRow.id == lesson_id, SectionRow.course_id == course_id)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none() is not None

    async def count_lessons(self, course_id: int) -> int:
        stmt = (
            select(func.count(LessonRow.id))
            .join(SectionRow, LessonRow.section_id == SectionRow.id)
            .where(SectionRow.course_id == course_id)
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def stored_file_paths(self, course_id: int) -> list[str]:
        stmt = (
            select(FileRow.stored_path)
            .join(SectionRow, FileRow.section_id == SectionRow.id)
            .where(SectionRow.course_id == course_id)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def get_outline(self, course_id: int) -> CourseOutline | None:
        """Load a course with its sections, lessons and files in three queries."""
        course = await self.get(course_id)
        if course is None:
            return None

        section_rows = (
            (
                await self._session.execute(
                    select(SectionRow)
                    .where(SectionRow.course_id == course_id)
                    .order_by(SectionRow.order, SectionRow.id)
                )
            )
            .scalars()
            .all()
        )
        section_ids = [s.id for s in section_rows]

        lessons_by_section: dict[int, list[Lesson]] = defaultdict(list)
        files_by_section: dict[int, list[CourseFile]] = defaultdict(list)
        if section_ids:
            lesson_rows = (
                await self._session.execute(
                    select(LessonRow)
                    .where(LessonRow.section_id.in_(section_ids))
                    .order_by(LessonRow.order, LessonRow.id)
                )
            ).scalars()
            for lr in lesson_rows:
                lessons_by_section[lr.section_id].append(_row_to_lesson(lr))

            file_rows = (
                await self._session.execute(
                    select(FileRow)
                    .where(FileRow.section_id.in_(section_ids))
                    .order_by(FileRow.id)
                )
            ).scalars()
            for fr in file_rows:
                files_by_section[fr.section_id].append(_row_to_file(fr))

        sections = tuple(
            Section(
                id=s.id,
                course_id=s.course_id,
                subtitle=s.subtitle,
                description=s.description,
                order=s.order,
                lessons=tuple(lessons_by_section[s.id]),
                files=tuple(files_by_section[s.id]),
            )
            for s in section_rows
        )
        return CourseOutline(course=course, sections=sections)


def course_from_row(row: CourseRow) -> Course:
    return Course(
        id=row.id,
        title=row.title,
        description=row.description,
        level=row.level,
        duration=row.duration,
        status=row.status,
        created_by=row.created_by,
        created_at=row.created_at,
    )


def _row_to_lesson(row: LessonRow) -> Lesson:
    return Lesson(
        id=row.id,
        section_id=row.section_id,
        title=row.title,
        content=row.content,
        order=row.order,
        duration=row.duration,
    )


def _row_to_file(row: FileRow) -> CourseFile:
    return CourseFile(
        id=row.id,
        section_id=row.section_id,
        filename=row.filename,
        stored_path=row.stored_path,
        content_type=row.content_type,
        size_bytes=row.size_bytes,
        uploaded_at=row.uploaded_at,
    )
