"""Local-disk storage for files attached to course sections.

Files land in ``UPLOAD_DIR`` under a random prefix so two uploads with
the same original name never collide.  The database keeps only the
stored path; the original name is kept separately for display.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from werkzeug.utils import secure_filename

from course_platform.core.config import SETTINGS

logger = logging.getLogger(__name__)


class FileStorage:
    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def save(self, filename: str, data: bytes) -> str:
        """Write *data* and return the stored path (relative to the root)."""
        safe = secure_filename(filename) or "upload"
        stored = f"{uuid.uuid4().hex}_{safe}"
        self._root.mkdir(parents=True, exist_ok=True)
        (self._root / stored).write_bytes(data)
        logger.debug(
            "Stored upload  name=%s path=%s bytes=%d", filename, stored, len(data)
        )
        return stored

    def remove(self, stored_paths: list[str]) -> None:
        for stored in stored_paths:
            try:
                (self._root / stored).unlink()
            except FileNotFoundError:
                logger.warning("Stored file already gone  path=%s", stored)


storage = FileStorage(SETTINGS.upload_dir)
