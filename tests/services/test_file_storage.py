from __future__ import annotations

import logging
from pathlib import Path

import pytest

from course_platform.services.file_storage import FileStorage


def test_save_sanitizes_name_and_avoids_collisions(tmp_path: Path) -> None:
    storage = FileStorage(tmp_path / "uploads")
    first = storage.save("../../etc/passwd", b"a")
    second = storage.save("../../etc/passwd", b"b")

    assert first != second
    assert "/" not in first
    assert first.endswith("_etc_passwd")
    assert (tmp_path / "uploads" / first).read_bytes() == b"a"


def test_save_falls_back_for_unusable_names(tmp_path: Path) -> None:
    stored = FileStorage(tmp_path).save("../..", b"x")
    assert stored.endswith("_upload")


def test_remove_tolerates_missing_files(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    storage = FileStorage(tmp_path)
    kept = storage.save("notes.txt", b"n")
    with caplog.at_level(logging.WARNING):
        storage.remove([kept, "never-written.txt"])

    assert list(tmp_path.iterdir()) == []
    assert "never-written.txt" in caplog.text
