"""Course catalogue endpoints (/cursos).

Reads are public except the full outline.  Every mutation requires the
admin role.  Course creation comes in two shapes:

  POST /cursos                      JSON, the course row only
  POST /cursos/crear-con-secciones  multipart: course fields, a JSON
                                    ``secciones`` list, and uploaded files
                                    whose form field name is the subtitle
                                    of the section they belong to
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request, status
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from course_platform.api.dependencies import AdminUser, CurrentUser, SessionDep
from course_platform.api.schemas import CourseOut, EnrolledCourseOut, MessageOut
from course_platform.core.config import SETTINGS
from course_platform.core.errors import ValidationError
from course_platform.models.course import (
    CourseOutline,
    LessonDraft,
    SectionDraft,
    UploadedFile,
)
from course_platform.services import course_service, progress_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cursos", tags=["courses"])


# --- Schemas --------------------------------------------------------------


class LessonOut(BaseModel):
    id: int
    titulo: str
    contenido: str
    orden: int
    duracion: int


class FileOut(BaseModel):
    id: int
    nombre: str
    tipo: str | None = None
    tamano: int


class SectionOut(BaseModel):
    id: int
    subtitulo: str
    descripcion: str
    orden: int
    lecciones: list[LessonOut]
    archivos: list[FileOut]


class CourseOutlineOut(CourseOut):
    secciones: list[SectionOut]

    @classmethod
    def from_outline(cls, outline: CourseOutline) -> CourseOutlineOut:
        base = CourseOut.from_course(outline.course).model_dump()
        return cls(
            **base,
            secciones=[
                SectionOut(
                    id=s.id,
                    subtitulo=s.subtitle,
                    descripcion=s.description,
                    orden=s.order,
                    lecciones=[
                        LessonOut(
                            id=lesson.id,
                            titulo=lesson.title,
                            contenido=lesson.content,
                            orden=lesson.order,
                            duracion=lesson.duration,
                        )
                        for lesson in s.lessons
                    ],
                    archivos=[
                        FileOut(
                            id=f.id,
                            nombre=f.filename,
                            tipo=f.content_type,
                            tamano=f.size_bytes,
                        )
                        for f in s.files
                    ],
                )
                for s in outline.sections
            ],
        )


class CourseIn(BaseModel):
    titulo: str
    descripcion: str
    nivel: str | None = None
    duracion: int | None = None
    estado: str = "active"


class CourseUpdateIn(BaseModel):
    titulo: str | None = None
    descripcion: str | None = None
    nivel: str | None = None
    duracion: int | None = None
    estado: str | None = None


class SectionUpdateIn(BaseModel):
    subtitulo: str | None = None
    descripcion: str | None = None
    orden: int | None = None


class CourseCreatedOut(BaseModel):
    mensaje: str
    cursoId: int


class CourseMessageOut(BaseModel):
    mensaje: str


class LessonDraftIn(BaseModel):
    titulo: str
    contenido: str = ""
    duracion: int = 0


class SectionDraftIn(BaseModel):
    subtitulo: str
    descripcion: str = ""
    lecciones: list[LessonDraftIn] = []


_sections_adapter = TypeAdapter(list[SectionDraftIn])

_COURSE_FIELD_MAP = {
    "titulo": "title",
    "descripcion": "description",
    "nivel": "level",
    "duracion": "duration",
    "estado": "status",
}
_SECTION_FIELD_MAP = {
    "subtitulo": "subtitle",
    "descripcion": "description",
    "orden": "order",
}


# --- Reads ----------------------------------------------------------------


@router.get("", response_model=list[CourseOut])
async def list_courses(
    session: SessionDep, estado: str | None = None
) -> list[CourseOut]:
    courses = await course_service.list_courses(session, status=estado)
    return [CourseOut.from_course(c) for c in courses]


@router.get("/mis-cursos", response_model=list[EnrolledCourseOut])
async def my_courses(
    principal: CurrentUser, session: SessionDep
) -> list[EnrolledCourseOut]:
    enrolled = await progress_service.list_my_courses(session, principal.user_id)
    return [EnrolledCourseOut.from_enrolled(e) for e in enrolled]


@router.get("/completo/{course_id}", response_model=CourseOutlineOut)
async def get_course_outline(
    course_id: int, _principal: CurrentUser, session: SessionDep
) -> CourseOutlineOut:
    outline = await course_service.get_outline(session, course_id)
    return CourseOutlineOut.from_outline(outline)


@router.get("/{course_id}", response_model=CourseOut)
async def get_course(course_id: int, session: SessionDep) -> CourseOut:
    return CourseOut.from_course(await course_service.get_course(session, course_id))


# --- Mutations (admin) ----------------------------------------------------


@router.post("", response_model=CourseCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_course(
    payload: CourseIn, principal: AdminUser, session: SessionDep
) -> CourseCreatedOut:
    course = await course_service.create_course(
        session,
        title=payload.titulo,
        description=payload.descripcion,
        level=payload.nivel,
        duration=payload.duracion,
        status=payload.estado,
        created_by=principal.user_id,
    )
    return CourseCreatedOut(mensaje="Course created", cursoId=course.id)


def _form_text(raw: object) -> str | None:
    return raw if isinstance(raw, str) and raw else None


def _optional_int(raw: object, field: str) -> int | None:
    if raw in (None, ""):
        return None
    try:
        return int(str(raw))
    except ValueError:
        raise ValidationError(f"{field} must be an integer") from None


async def _read_upload(upload: UploadFile) -> bytes:
    limit = SETTINGS.max_upload_bytes
    data = await upload.read(limit + 1)
    if len(data) > limit:
        raise ValidationError(
            f"File {upload.filename!r} exceeds the {limit} byte upload limit"
        )
    return data


def _parse_sections(raw: object) -> list[SectionDraftIn]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, str):
        raise ValidationError("secciones must be a JSON list")
    try:
        return _sections_adapter.validate_python(json.loads(raw))
    except (json.JSONDecodeError, PydanticValidationError):
        raise ValidationError("secciones must be a JSON list of sections") from None


@router.post(
    "/crear-con-secciones",
    response_model=CourseCreatedOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_course_with_sections(
    request: Request, principal: AdminUser, session: SessionDep
) -> CourseCreatedOut:
    form = await request.form()
    try:
        sections_in = _parse_sections(form.get("secciones"))

        # Uploaded files arrive under the subtitle of their section.
        uploads: dict[str, list[UploadedFile]] = {}
        for field, value in form.multi_items():
            if isinstance(value, UploadFile):
                uploads.setdefault(field, []).append(
                    UploadedFile(
                        filename=value.filename or field,
                        content_type=value.content_type,
                        data=await _read_upload(value),
                    )
                )

        drafts = [
            SectionDraft(
                subtitle=s.subtitulo,
                description=s.descripcion,
                lessons=tuple(
                    LessonDraft(
                        title=lesson.titulo,
                        content=lesson.contenido,
                        duration=lesson.duracion,
                    )
                    for lesson in s.lecciones
                ),
                files=tuple(uploads.get(s.subtitulo, ())),
            )
            for s in sections_in
        ]
        orphaned = set(uploads) - {s.subtitulo for s in sections_in}
        if orphaned:
            logger.warning("Ignoring files for unknown sections: %s", sorted(orphaned))

        course = await course_service.create_course_with_sections(
            session,
            title=_form_text(form.get("titulo")),
            description=_form_text(form.get("descripcion")),
            level=_form_text(form.get("nivel")),
            duration=_optional_int(form.get("duracion"), "duracion"),
            sections=drafts,
            created_by=principal.user_id,
        )
    finally:
        await form.close()

    return CourseCreatedOut(mensaje="Course created with sections", cursoId=course.id)


@router.put("/{course_id}", response_model=CourseMessageOut)
async def update_course(
    course_id: int, payload: CourseUpdateIn, _principal: AdminUser, session: SessionDep
) -> CourseMessageOut:
    fields = payload.model_dump(exclude_unset=True)
    changes = {_COURSE_FIELD_MAP[k]: v for k, v in fields.items()}
    await course_service.update_course(session, course_id, changes)
    return CourseMessageOut(mensaje="Course updated")


@router.delete("/{course_id}", response_model=CourseMessageOut)
async def delete_course(
    course_id: int, _principal: AdminUser, session: SessionDep
) -> CourseMessageOut:
    await course_service.delete_course(session, course_id)
    return CourseMessageOut(mensaje="Course deleted")


@router.put("/{course_id}/secciones/{section_id}", response_model=CourseMessageOut)
async def update_section(
    course_id: int,
    section_id: int,
    payload: SectionUpdateIn,
    _principal: AdminUser,
    session: SessionDep,
) -> CourseMessageOut:
    fields = payload.model_dump(exclude_none=True)
    changes = {_SECTION_FIELD_MAP[k]: v for k, v in fields.items()}
    await course_service.update_section(session, course_id, section_id, changes)
    return CourseMessageOut(mensaje="Section updated")


# --- Enrollment alias -----------------------------------------------------


@router.post("/{course_id}/inscribirse", response_model=MessageOut)
async def enroll_in_course(
    course_id: int, principal: CurrentUser, session: SessionDep
) -> MessageOut:
    await progress_service.enroll(session, principal.user_id, course_id)
    return MessageOut(message="Enrollment successful")
