from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from course_platform.models.course import Course, CourseOutline


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A user's participation in one course, with aggregate progress.

    ``progress`` is a 0-100 integer percentage; ``completed`` is true
    exactly when progress is 100.  ``completed_at`` is stamped once, on
    the transition to completed.
    """

    id: int
    user_id: int
    course_id: int
    progress: int = 0
    completed: bool = False
    enrolled_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Certificate:
    id: int
    enrollment_id: int
    code: str
    issued_at: datetime


@dataclass(frozen=True, slots=True)
class CertificateDetails:
    """A certificate joined with the student and course it was issued for."""

    code: str
    issued_at: datetime
    student_name: str
    course_id: int
    course_title: str


@dataclass(frozen=True, slots=True)
class EnrolledCourse:
    course: Course
    enrollment: Enrollment


@dataclass(frozen=True, slots=True)
class CompletionResult:
    """Outcome of marking a lesson completed."""

    progress: int
    completed: bool
    certificate_code: str | None = None


@dataclass(frozen=True, slots=True)
class CourseProgress:
    """Nested progress view: the outline plus this enrollment's state.

    ``completed_lessons`` holds the ids of lessons this enrollment has
    finished; every other lesson in the outline reads as not completed.
    """

    outline: CourseOutline
    enrollment: Enrollment
    completed_lessons: frozenset[int]


@dataclass(frozen=True, slots=True)
class EnrollmentDetail:
    """Admin view of one enrollment."""

    enrollment: Enrollment
    student_name: str
    student_email: str
    course_title: str


@dataclass(frozen=True, slots=True)
class EnrollmentSummary:
    total_students: int
    total_enrollments: int
    average_progress: int
    completed_enrollments: int
