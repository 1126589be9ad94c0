from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from course_platform.api.dependencies import AdminUser, SessionDep
from course_platform.api.schemas import MessageOut, UserOut
from course_platform.models.enrollment import EnrollmentDetail
from course_platform.services import admin_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class PlatformStatsOut(BaseModel):
    cursos: int
    usuarios: int
    inscripciones: int


class EnrollmentDetailOut(BaseModel):
    id: int
    usuarioId: int
    nombre: str
    email: str
    cursoId: int
    cursoTitulo: str
    progreso: int
    completado: bool
    fechaInscripcion: datetime | None = None
    fechaCompletado: datetime | None = None

    @classmethod
    def from_detail(cls, d: EnrollmentDetail) -> EnrollmentDetailOut:
        e = d.enrollment
        return cls(
            id=e.id,
            usuarioId=e.user_id,
            nombre=d.student_name,
            email=d.student_email,
            cursoId=e.course_id,
            cursoTitulo=d.course_title,
            progreso=e.progress,
            completado=e.completed,
            fechaInscripcion=e.enrolled_at,
            fechaCompletado=e.completed_at,
        )


class EnrollmentSummaryOut(BaseModel):
    totalEstudiantes: int
    totalInscripciones: int
    promedioProgreso: int
    cursosCompletados: int


class EnrollmentReportOut(BaseModel):
    inscripciones: list[EnrollmentDetailOut]
    estadisticas: EnrollmentSummaryOut


@router.get("/estadisticas", response_model=PlatformStatsOut)
async def platform_stats(principal: AdminUser, session: SessionDep) -> PlatformStatsOut:
    logger.info("Platform stats requested by user=%s", principal.user_id)
    return PlatformStatsOut(**await admin_service.platform_counts(session))


@router.get("/usuarios", response_model=list[UserOut])
async def list_users(principal: AdminUser, session: SessionDep) -> list[UserOut]:
    logger.info("Admin user list requested by user=%s", principal.user_id)
    users = await admin_service.list_users(session)
    return [UserOut.from_user(u) for u in users]


@router.delete("/usuarios/{user_id}", response_model=MessageOut)
async def delete_user(
    user_id: int, principal: AdminUser, session: SessionDep
) -> MessageOut:
    await admin_service.delete_user(
        session, actor_id=principal.user_id, user_id=user_id
    )
    return MessageOut(message="User deleted")


@router.get("/inscripciones-detalladas", response_model=EnrollmentReportOut)
async def enrollment_report(
    _principal: AdminUser, session: SessionDep
) -> EnrollmentReportOut:
    details, summary = await admin_service.enrollment_report(session)
    return EnrollmentReportOut(
        inscripciones=[EnrollmentDetailOut.from_detail(d) for d in details],
        estadisticas=EnrollmentSummaryOut(
            totalEstudiantes=summary.total_students,
            totalInscripciones=summary.total_enrollments,
            promedioProgreso=summary.average_progress,
            cursosCompletados=summary.completed_enrollments,
        ),
    )
