"""SQLAlchemy repository for inscripciones, progreso_lecciones and certificados.

The unique constraints on these tables are the concurrency safety net of
the progress tracker, so the two writes that can race are expressed as
single statements the database arbitrates:

  upsert_lesson_progress   INSERT ... ON CONFLICT (enrollment_id, lesson_id)
                           DO UPDATE
  insert_certificate       INSERT ... ON CONFLICT DO NOTHING, then re-read

Both PostgreSQL and SQLite support the same ON CONFLICT syntax.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from course_platform.db.tables import (
    CertificateRow,
    CourseRow,
    EnrollmentRow,
    LessonProgressRow,
    LessonRow,
    SectionRow,
    UserRow,
)
from course_platform.models.enrollment import (
    Certificate,
    CertificateDetails,
    EnrolledCourse,
    Enrollment,
    EnrollmentDetail,
)
from course_platform.repos.course_repo import course_from_row

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class EnrollmentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def _upsert_insert(self, table):
        dialect = self._session.get_bind().dialect.name
        try:
            return _INSERTS[dialect](table)
        except KeyError:
            raise RuntimeError(f"unsupported database dialect: {dialect}") from None

    # --- inscripciones ---

    async def get(
        self, user_id: int, course_id: int, *, for_update: bool = False
    ) -> Enrollment | None:
        """Fetch the enrollment for a (user, course) pair.

        ``for_update`` takes a row lock (PostgreSQL) so concurrent
        completions of the same enrollment run one after the other.
        """
        stmt = select(EnrollmentRow).where(
            EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_enrollment(row) if row is not None else None

    async def add(
        self, *, user_id: int, course_id: int, enrolled_at: datetime
    ) -> Enrollment:
        """Insert a fresh enrollment. Raises ValueError if the pair exists."""
        row = EnrollmentRow(
            user_id=user_id,
            course_id=course_id,
            progress=0,
            completed=False,
            enrolled_at=enrolled_at,
            completed_at=None,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
        except IntegrityError:
            raise ValueError("already enrolled") from None
        return _row_to_enrollment(row)

    async def delete(self, user_id: int, course_id: int) -> bool:
        result = await self._session.execute(
            delete(EnrollmentRow).where(
                EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id
            )
        )
        return result.rowcount > 0

    async def update_progress(
        self,
        enrollment_id: int,
        *,
        progress: int,
        completed: bool,
        completed_at: datetime | None,
    ) -> None:
        await self._session.execute(
            update(EnrollmentRow)
            .where(EnrollmentRow.id == enrollment_id)
            .values(progress=progress, completed=completed, completed_at=completed_at)
        )

    async def list_for_user(self, user_id: int) -> list[EnrolledCourse]:
        stmt = (
            select(CourseRow, EnrollmentRow)
            .join(EnrollmentRow, EnrollmentRow.course_id == CourseRow.id)
            .where(EnrollmentRow.user_id == user_id)
            .order_by(EnrollmentRow.enrolled_at.desc(), EnrollmentRow.id.desc())
        )
        rows = (await self._session.execute(stmt)).all()
        return [
            EnrolledCourse(course=course_from_row(c), enrollment=_row_to_enrollment(e))
            for c, e in rows
        ]

    async def count(self) -> int:
        return (
            await self._session.execute(select(func.count(EnrollmentRow.id)))
        ).scalar_one()

    async def list_details(self) -> list[EnrollmentDetail]:
        stmt = (
            select(EnrollmentRow, UserRow.name, UserRow.email, CourseRow.title)
            .join(UserRow, EnrollmentRow.user_id == UserRow.id)
            .join(CourseRow, EnrollmentRow.course_id == CourseRow.id)
            .order_by(EnrollmentRow.enrolled_at.desc(), EnrollmentRow.id.desc())
        )
        rows = (await self._session.execute(stmt)).all()
        return [
            EnrollmentDetail(
                enrollment=_row_to_enrollment(e),
                student_name=name,
                student_email=email,
                course_title=title,
            )
            for e, name, email, title in rows
        ]

    # --- progreso_lecciones ---

    async def upsert_lesson_progress(
        self, *, enrollment_id: int, lesson_id: int, completed_at: datetime
    ) -> None:
        stmt = self._upsert_insert(LessonProgressRow).values(
            enrollment_id=enrollment_id,
            lesson_id=lesson_id,
            completed=True,
            completed_at=completed_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["enrollment_id", "lesson_id"],
            set_={"completed": True, "completed_at": completed_at},
        )
        await self._session.execute(stmt)

    async def count_completed_lessons(self, enrollment_id: int, course_id: int) -> int:
        """Distinct completed lessons of *course_id* for this enrollment."""
        stmt = (
            select(func.count(LessonProgressRow.id))
            .join(LessonRow, LessonProgressRow.lesson_id == LessonRow.id)
            .join(SectionRow, LessonRow.section_id == SectionRow.id)
            .where(
                LessonProgressRow.enrollment_id == enrollment_id,
                LessonProgressRow.completed.is_(True),
                SectionRow.course_id == course_id,
            )
        )
        return (await self._session.execute(stmt)).scalar_one()

    async def completed_lesson_ids(self, enrollment_id: int) -> frozenset[int]:
        stmt = select(LessonProgressRow.lesson_id).where(
            LessonProgressRow.enrollment_id == enrollment_id,
            LessonProgressRow.completed.is_(True),
        )
        return frozenset((await self._session.execute(stmt)).scalars().all())

    # --- certificados ---

    async def get_certificate(self, enrollment_id: int) -> Certificate | None:
        stmt = select(CertificateRow).where(
            CertificateRow.enrollment_id == enrollment_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_certificate(row) if row is not None else None

    async def insert_certificate(
        self, *, enrollment_id: int, code: str, issued_at: datetime
    ) -> tuple[Certificate, bool]:
        """Insert-or-fetch the certificate of an enrollment.

        Returns ``(certificate, created)``.  When another transaction got
        there first the unique constraint on enrollment_id turns our insert
        into a no-op and the existing row is returned with created=False.
        """
        stmt = (
            self._upsert_insert(CertificateRow)
            .values(enrollment_id=enrollment_id, code=code, issued_at=issued_at)
            .on_conflict_do_nothing()
        )
        await self._session.execute(stmt)

        cert = await self.get_certificate(enrollment_id)
        if cert is None:
            # Conflict on the code itself, not on the enrollment.
            raise RuntimeError(f"certificate code collision for {code!r}")
        return cert, cert.code == code

    async def certificate_details(
        self, user_id: int, course_id: int
    ) -> CertificateDetails | None:
        stmt = (
            _certificate_details_query()
            .where(
                EnrollmentRow.user_id == user_id, EnrollmentRow.course_id == course_id
            )
        )
        row = (await self._session.execute(stmt)).one_or_none()
        return _row_to_details(row) if row is not None else None

    async def list_certificates(self, user_id: int) -> list[CertificateDetails]:
        stmt = (
            _certificate_details_query()
            .where(EnrollmentRow.user_id == user_id)
            .order_by(CertificateRow.issued_at.desc(), CertificateRow.id.desc())
        )
        rows = (await self._session.execute(stmt)).all()
        return [_row_to_details(r) for r in rows]


def _certificate_details_query():
    return (
        select(
            CertificateRow.code,
            CertificateRow.issued_at,
            UserRow.name,
            CourseRow.id,
            CourseRow.title,
        )
        .join(EnrollmentRow, CertificateRow.enrollment_id == EnrollmentRow.id)
        .join(UserRow, EnrollmentRow.user_id == UserRow.id)
        .join(CourseRow, EnrollmentRow.course_id == CourseRow.id)
    )


def _row_to_details(row) -> CertificateDetails:
    code, issued_at, name, course_id, title = row
    return CertificateDetails(
        code=code,
        issued_at=issued_at,
        student_name=name,
        course_id=course_id,
        course_title=title,
    )


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        progress=row.progress,
        completed=row.completed,
        enrolled_at=row.enrolled_at,
        completed_at=row.completed_at,
    )


def _row_to_certificate(row: CertificateRow) -> Certificate:
    return Certificate(
        id=row.id,
        enrollment_id=row.enrollment_id,
        code=row.code,
        issued_at=row.issued_at,
    )


