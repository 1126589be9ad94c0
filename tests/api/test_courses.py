from __future__ import annotations

import dataclasses
import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from course_platform.api import courses as courses_api
from course_platform.core.config import SETTINGS
from tests.conftest import create_course


def _new_course(client: TestClient, headers: dict[str, str], **overrides) -> int:
    payload = {"titulo": "Python 101", "descripcion": "From zero", "nivel": "basic"}
    payload.update(overrides)
    resp = client.post("/cursos", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    assert resp.json()["mensaje"] == "Course created"
    return resp.json()["cursoId"]


# ---- public reads ----


def test_catalogue_is_public(client: TestClient, admin_headers: dict[str, str]) -> None:
    course_id = _new_course(client, admin_headers)
    _new_course(client, admin_headers, titulo="Old", estado="archived")

    resp = client.get("/cursos")
    assert resp.status_code == 200
    assert [c["titulo"] for c in resp.json()] == ["Python 101", "Old"]

    archived = client.get("/cursos", params={"estado": "archived"}).json()
    assert [c["titulo"] for c in archived] == ["Old"]

    one = client.get(f"/cursos/{course_id}").json()
    assert one["nivel"] == "basic"
    assert one["estado"] == "active"


def test_unknown_status_filter_is_400(client: TestClient) -> None:
    assert client.get("/cursos", params={"estado": "draft"}).status_code == 400


def test_unknown_course_is_404(client: TestClient) -> None:
    resp = client.get("/cursos/4040")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Course not found"


def test_full_outline_requires_token(
    client: TestClient,
    admin_headers: dict[str, str],
    student_headers: dict[str, str],
) -> None:
    course_id, lesson_ids = create_course(
        client, admin_headers, lessons_per_section=(2, 1)
    )
    assert client.get(f"/cursos/completo/{course_id}").status_code == 401

    outline = client.get(f"/cursos/completo/{course_id}", headers=student_headers)
    assert outline.status_code == 200
    sections = outline.json()["secciones"]
    assert [s["orden"] for s in sections] == [1, 2]
    assert [len(s["lecciones"]) for s in sections] == [2, 1]
    assert [les["orden"] for les in sections[0]["lecciones"]] == [1, 2]
    assert len(lesson_ids) == 3


# ---- admin mutations ----


def test_student_cannot_create_course(
    client: TestClient, student_headers: dict[str, str]
) -> None:
    resp = client.post(
        "/cursos", json={"titulo": "X", "descripcion": "Y"}, headers=student_headers
    )
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Insufficient permissions"


def test_create_course_needs_title_and_description(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    resp = client.post(
        "/cursos", json={"titulo": "  ", "descripcion": "Y"}, headers=admin_headers
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Title and description are required"


def test_course_records_its_creator(
    client: TestClient, admin_id: int, admin_headers: dict[str, str]
) -> None:
    course_id = _new_course(client, admin_headers)
    assert client.get(f"/cursos/{course_id}").json()["creadoPor"] == admin_id


def test_update_course_partial(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    course_id = _new_course(client, admin_headers)
    resp = client.put(
        f"/cursos/{course_id}", json={"estado": "archived"}, headers=admin_headers
    )
    assert resp.status_code == 200
    assert resp.json() == {"mensaje": "Course updated"}

    course = client.get(f"/cursos/{course_id}").json()
    assert course["estado"] == "archived"
    assert course["titulo"] == "Python 101"


def test_update_unknown_course_is_404(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    resp = client.put("/cursos/999", json={"titulo": "X"}, headers=admin_headers)
    assert resp.status_code == 404


def test_delete_course(client: TestClient, admin_headers: dict[str, str]) -> None:
    course_id = _new_course(client, admin_headers)
    resp = client.delete(f"/cursos/{course_id}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json() == {"mensaje": "Course deleted"}
    assert client.get(f"/cursos/{course_id}").status_code == 404
    again = client.delete(f"/cursos/{course_id}", headers=admin_headers)
    assert again.status_code == 404


def test_update_section(client: TestClient, admin_headers: dict[str, str]) -> None:
    course_id, _ = create_course(client, admin_headers)
    outline = client.get(f"/cursos/completo/{course_id}", headers=admin_headers).json()
    section_id = outline["secciones"][0]["id"]

    resp = client.put(
        f"/cursos/{course_id}/secciones/{section_id}",
        json={"subtitulo": "Getting started"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json() == {"mensaje": "Section updated"}

    outline = client.get(f"/cursos/completo/{course_id}", headers=admin_headers).json()
    assert outline["secciones"][0]["subtitulo"] == "Getting started"

    missing = client.put(
        f"/cursos/{course_id}/secciones/{section_id + 100}",
        json={"subtitulo": "Nope"},
        headers=admin_headers,
    )
    assert missing.status_code == 404


# ---- multipart creation ----


def test_create_with_sections_attaches_files(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    sections = [
        {"subtitulo": "Intro", "lecciones": [{"titulo": "Hello", "duracion": 3}]},
        {"subtitulo": "Deep dive", "lecciones": []},
    ]
    resp = client.post(
        "/cursos/crear-con-secciones",
        data={
            "titulo": "Files",
            "descripcion": "With attachments",
            "duracion": "90",
            "secciones": json.dumps(sections),
        },
        files=[
            ("Intro", ("slides.pdf", b"%PDF-1.4 slides", "application/pdf")),
            ("Intro", ("notes.txt", b"notes", "text/plain")),
            ("Elsewhere", ("stray.txt", b"ignored", "text/plain")),
        ],
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["mensaje"] == "Course created with sections"
    course_id = resp.json()["cursoId"]

    outline = client.get(f"/cursos/completo/{course_id}", headers=admin_headers).json()
    assert outline["duracion"] == 90
    intro, deep = outline["secciones"]
    assert [f["nombre"] for f in intro["archivos"]] == ["slides.pdf", "notes.txt"]
    assert intro["archivos"][0]["tipo"] == "application/pdf"
    assert intro["archivos"][0]["tamano"] == len(b"%PDF-1.4 slides")
    assert deep["archivos"] == []
    assert intro["lecciones"][0]["duracion"] == 3


def test_create_with_sections_rejects_bad_json(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    before = set(Path(SETTINGS.upload_dir).glob("*"))
    resp = client.post(
        "/cursos/crear-con-secciones",
        data={"titulo": "T", "descripcion": "D", "secciones": "{not json"},
        files=[("Intro", ("a.txt", b"a", "text/plain"))],
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert client.get("/cursos").json() == []
    assert set(Path(SETTINGS.upload_dir).glob("*")) == before


def test_create_with_sections_rejects_oversized_upload(
    client: TestClient,
    admin_headers: dict[str, str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(
        courses_api, "SETTINGS", dataclasses.replace(SETTINGS, max_upload_bytes=8)
    )
    before = set(Path(SETTINGS.upload_dir).glob("*"))
    sections = [{"subtitulo": "Intro", "lecciones": []}]
    resp = client.post(
        "/cursos/crear-con-secciones",
        data={"titulo": "T", "descripcion": "D", "secciones": json.dumps(sections)},
        files=[("Intro", ("big.bin", b"x" * 9, "application/octet-stream"))],
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert "upload limit" in resp.json()["detail"]
    assert client.get("/cursos").json() == []
    assert set(Path(SETTINGS.upload_dir).glob("*")) == before


def test_create_with_sections_requires_title(
    client: TestClient, admin_headers: dict[str, str]
) -> None:
    resp = client.post(
        "/cursos/crear-con-secciones",
        data={"descripcion": "D", "secciones": "[]"},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Title and description are required"


def test_create_with_sections_is_admin_only(
    client: TestClient, student_headers: dict[str, str]
) -> None:
    resp = client.post(
        "/cursos/crear-con-secciones",
        data={"titulo": "T", "descripcion": "D"},
        headers=student_headers,
    )
    assert resp.status_code == 403
