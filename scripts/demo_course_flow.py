"""Demo: walk a student from registration to a certificate.

Runs against a throwaway in-memory database using FastAPI's TestClient:

    python -m scripts.demo_course_flow
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("UPLOAD_DIR", "./demo-uploads")

from functools import partial  # noqa: E402

from fastapi.testclient import TestClient  # noqa: E402

from course_platform.db.engine import async_session_factory  # noqa: E402
from course_platform.main import app  # noqa: E402
from scripts.create_admin import create_admin  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
STUDENT_EMAIL = "student@example.com"
PASSWORD = "demo-pass"


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def main() -> None:
    with TestClient(app) as client:
        # ── Seed an admin (CLI path, no HTTP) ───────────────────────────
        assert client.portal is not None
        client.portal.call(
            partial(
                create_admin,
                async_session_factory,
                name="Admin",
                email=ADMIN_EMAIL,
                password=PASSWORD,
            )
        )
        r = client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": PASSWORD})
        admin = r.json()["token"]
        print(f"1. POST /auth/login (admin)     → {r.status_code}  rol={r.json()['rol']}")

        # ── Step 2: course with one section and two lessons ─────────────
        r = client.post(
            "/cursos",
            json={"titulo": "Python 101", "descripcion": "From zero to scripts"},
            headers=_bearer(admin),
        )
        course_id = r.json()["cursoId"]
        print(f"2. POST /cursos                 → {r.status_code}  cursoId={course_id}")

        r = client.post(
            "/cursos/crear-con-secciones",
            data={
                "titulo": "Data 101",
                "descripcion": "Tables and charts",
                "secciones": (
                    '[{"subtitulo": "Basics", "descripcion": "Start here",'
                    ' "lecciones": [{"titulo": "Intro"}, {"titulo": "Tables"}]}]'
                ),
            },
            files={"Basics": ("notes.txt", b"read me first", "text/plain")},
            headers=_bearer(admin),
        )
        course_id = r.json()["cursoId"]
        print(f"   POST /cursos/crear-con-secciones → {r.status_code}  cursoId={course_id}")

        # ── Step 3: student registers, logs in, enrolls ─────────────────
        r = client.post(
            "/auth/register",
            json={"nombre": "Student", "email": STUDENT_EMAIL, "password": PASSWORD},
        )
        print(f"3. POST /auth/register          → {r.status_code}")
        r = client.post("/auth/login", json={"email": STUDENT_EMAIL, "password": PASSWORD})
        student = r.json()["token"]
        r = client.post(f"/inscripciones/{course_id}", headers=_bearer(student))
        print(f"   POST /inscripciones/{course_id}       → {r.status_code}  {r.json()}")

        # ── Step 4: complete every lesson ───────────────────────────────
        r = client.get(f"/progreso/{course_id}", headers=_bearer(student))
        lessons = [les["id"] for s in r.json()["secciones"] for les in s["lecciones"]]
        for lesson_id in lessons:
            r = client.post(
                f"/progreso/{course_id}/leccion/{lesson_id}/completar",
                headers=_bearer(student),
            )
            body = r.json()
            print(
                f"4. complete lesson {lesson_id}           → {r.status_code}  "
                f"progreso={body['progreso']} certificado={body['certificado']}"
            )

        # ── Step 5: certificate ─────────────────────────────────────────
        r = client.get(f"/progreso/{course_id}/certificado", headers=_bearer(student))
        print(f"5. GET  certificado              → {r.status_code}  {r.json()['codigo']}")
        r = client.get(f"/progreso/{course_id}/certificado/pdf", headers=_bearer(student))
        print(f"   GET  certificado/pdf          → {r.status_code}  {len(r.content)} bytes")

    print("\nAll steps completed.")


if __name__ == "__main__":
    main()
