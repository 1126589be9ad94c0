"""Response schemas shared by more than one router."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from course_platform.models.course import Course
from course_platform.models.enrollment import EnrolledCourse
from course_platform.models.user import User


class MessageOut(BaseModel):
    message: str


class CourseOut(BaseModel):
    id: int
    titulo: str
    descripcion: str
    nivel: str | None = None
    duracion: int | None = None
    estado: str
    creadoPor: int | None = None
    fechaCreacion: datetime | None = None

    @classmethod
    def from_course(cls, course: Course) -> CourseOut:
        return cls(
            id=course.id,
            titulo=course.title,
            descripcion=course.description,
            nivel=course.level,
            duracion=course.duration,
            estado=course.status,
            creadoPor=course.created_by,
            fechaCreacion=course.created_at,
        )


class EnrolledCourseOut(CourseOut):
    """A course as listed under "my courses": catalogue fields plus progress."""

    progreso: int
    completado: bool
    fechaInscripcion: datetime | None = None

    @classmethod
    def from_enrolled(cls, enrolled: EnrolledCourse) -> EnrolledCourseOut:
        return cls(
            **CourseOut.from_course(enrolled.course).model_dump(),
            progreso=enrolled.enrollment.progress,
            completado=enrolled.enrollment.completed,
            fechaInscripcion=enrolled.enrollment.enrolled_at,
        )


class UserOut(BaseModel):
    """A user as shown to clients; never carries the password hash."""

    id: int
    nombre: str
    email: str
    rol: str
    fechaRegistro: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> UserOut:
        return cls(
            id=user.id,
            nombre=user.name,
            email=user.email,
            rol=user.role,
            fechaRegistro=user.created_at,
        )
