from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLES: tuple[str, ...] = ("admin", "student")


@dataclass(frozen=True, slots=True)
class User:
    id: int
    name: str
    email: str
    password_hash: str
    role: str = "student"  # admin|student
    created_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
