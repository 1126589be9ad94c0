"""Progress and certificate endpoints (/progreso).

  GET  /progreso/{cursoId}                                 nested progress view
  POST /progreso/{cursoId}/leccion/{leccionId}/completar   mark a lesson done
  GET  /progreso/{cursoId}/certificado                     certificate data
  GET  /progreso/{cursoId}/certificado/pdf                 certificate as PDF
  GET  /progreso/mis-certificados/listar                   all my certificates

The static ``mis-certificados`` route is registered before the
``{cursoId}`` routes so it is never read as a course id.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import Response
from pydantic import BaseModel

from course_platform.api.dependencies import CurrentUser, SessionDep
from course_platform.models.enrollment import CertificateDetails, CourseProgress
from course_platform.services import progress_service
from course_platform.services.certificate_pdf import render_certificate_pdf

router = APIRouter(prefix="/progreso", tags=["progress"])


# --- Schemas --------------------------------------------------------------


class LessonProgressOut(BaseModel):
    id: int
    titulo: str
    contenido: str
    orden: int
    duracion: int
    completado: bool


class SectionProgressOut(BaseModel):
    id: int
    subtitulo: str
    descripcion: str
    orden: int
    lecciones: list[LessonProgressOut]


class CourseProgressOut(BaseModel):
    id: int
    titulo: str
    descripcion: str
    progreso: int
    completado: bool
    secciones: list[SectionProgressOut]

    @classmethod
    def from_progress(cls, view: CourseProgress) -> CourseProgressOut:
        course = view.outline.course
        return cls(
            id=course.id,
            titulo=course.title,
            descripcion=course.description,
            progreso=view.enrollment.progress,
            completado=view.enrollment.completed,
            secciones=[
                SectionProgressOut(
                    id=s.id,
                    subtitulo=s.subtitle,
                    descripcion=s.description,
                    orden=s.order,
                    lecciones=[
                        LessonProgressOut(
                            id=lesson.id,
                            titulo=lesson.title,
                            contenido=lesson.content,
                            orden=lesson.order,
                            duracion=lesson.duration,
                            completado=lesson.id in view.completed_lessons,
                        )
                        for lesson in s.lessons
                    ],
                )
                for s in view.outline.sections
            ],
        )


class CompletionOut(BaseModel):
    message: str
    progreso: int
    completado: bool
    certificado: str | None


class CertificateOut(BaseModel):
    codigo: str
    fechaEmision: datetime
    nombre: str
    cursoId: int
    titulo: str

    @classmethod
    def from_details(cls, details: CertificateDetails) -> CertificateOut:
        return cls(
            codigo=details.code,
            fechaEmision=details.issued_at,
            nombre=details.student_name,
            cursoId=details.course_id,
            titulo=details.course_title,
        )


# --- Routes ---------------------------------------------------------------


@router.get("/mis-certificados/listar", response_model=list[CertificateOut])
async def my_certificates(
    principal: CurrentUser, session: SessionDep
) -> list[CertificateOut]:
    certs = await progress_service.list_certificates(session, principal.user_id)
    return [CertificateOut.from_details(c) for c in certs]


@router.get("/{course_id}", response_model=CourseProgressOut)
async def course_progress(
    course_id: int, principal: CurrentUser, session: SessionDep
) -> CourseProgressOut:
    view = await progress_service.get_course_progress(
        session, principal.user_id, course_id
    )
    return CourseProgressOut.from_progress(view)


@router.post(
    "/{course_id}/leccion/{lesson_id}/completar", response_model=CompletionOut
)
async def complete_lesson(
    course_id: int, lesson_id: int, principal: CurrentUser, session: SessionDep
) -> CompletionOut:
    result = await progress_service.mark_lesson_completed(
        session, principal.user_id, course_id, lesson_id
    )
    return CompletionOut(
        message="Lesson marked as completed",
        progreso=result.progress,
        completado=result.completed,
        certificado=result.certificate_code,
    )


@router.get("/{course_id}/certificado", response_model=CertificateOut)
async def certificate(
    course_id: int, principal: CurrentUser, session: SessionDep
) -> CertificateOut:
    details = await progress_service.get_certificate(
        session, principal.user_id, course_id
    )
    return CertificateOut.from_details(details)


@router.get("/{course_id}/certificado/pdf", response_class=Response)
async def certificate_pdf(
    course_id: int, principal: CurrentUser, session: SessionDep
) -> Response:
    details = await progress_service.get_certificate(
        session, principal.user_id, course_id
    )
    return Response(
        content=render_certificate_pdf(details),
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{details.code}.pdf"'
        },
    )
