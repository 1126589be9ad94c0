from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

COURSE_STATUSES: tuple[str, ...] = ("active", "archived")


@dataclass(frozen=True, slots=True)
class Course:
    id: int
    title: str
    description: str
    level: str | None = None
    duration: int | None = None
    status: str = "active"  # active|archived
    created_by: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class CourseFile:
    id: int
    section_id: int
    filename: str
    stored_path: str
    content_type: str | None
    size_bytes: int
    uploaded_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Lesson:
    id: int
    section_id: int
    title: str
    content: str
    order: int
    duration: int = 0  # minutes


@dataclass(frozen=True, slots=True)
class Section:
    id: int
    course_id: int
    subtitle: str
    description: str
    order: int
    lessons: tuple[Lesson, ...] = ()
    files: tuple[CourseFile, ...] = ()


@dataclass(frozen=True, slots=True)
class CourseOutline:
    """A course with its sections, lessons and files, all in display order."""

    course: Course
    sections: tuple[Section, ...] = field(default_factory=tuple)

    @property
    def lesson_count(self) -> int:
        return sum(len(s.lessons) for s in self.sections)


# --- Creation drafts (validated input, no ids yet) ---


@dataclass(frozen=True, slots=True)
class LessonDraft:
    title: str
    content: str = ""
    duration: int = 0


@dataclass(frozen=True, slots=True)
class UploadedFile:
    """A file received in a multipart request, not yet written to disk."""

    filename: str
    content_type: str | None
    data: bytes


@dataclass(frozen=True, slots=True)
class SectionDraft:
    subtitle: str
    description: str = ""
    lessons: tuple[LessonDraft, ...] = ()
    files: tuple[UploadedFile, ...] = ()
