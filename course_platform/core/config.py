from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./course_platform.db"
_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it's easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "").lower()
    if not raw:
        return default
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getint(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str
    redis_url: str | None
    jwt_private_key: str | None
    access_token_ttl_min: int
    cors_origins: tuple[str, ...]
    upload_dir: str
    max_upload_bytes: int
    db_create_all: bool

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getint("PORT", 8000)
    ttl = _getint("ACCESS_TOKEN_TTL_MIN", 480)
    if ttl <= 0:
        raise ValueError(f"ACCESS_TOKEN_TTL_MIN must be positive (got {ttl})")
    max_upload_bytes = _getint("MAX_UPLOAD_BYTES", 20 * 1024 * 1024)
    if max_upload_bytes <= 0:
        raise ValueError(
            f"MAX_UPLOAD_BYTES must be positive (got {max_upload_bytes})"
        )

    database_url = _getenv("DATABASE_URL", "") or _DEFAULT_DATABASE_URL
    redis_url = _getenv("REDIS_URL", "") or None
    # PEM keys are multi-line; allow "\n" escapes for single-line env files.
    jwt_private_key = _getenv("JWT_PRIVATE_KEY", "").replace("\\n", "\n") or None

    cors_origins = tuple(
        origin.strip()
        for origin in _getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
        if origin.strip()
    )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        jwt_private_key=jwt_private_key,
        access_token_ttl_min=ttl,
        cors_origins=cors_origins,
        upload_dir=_getenv("UPLOAD_DIR", "./uploads"),
        max_upload_bytes=max_upload_bytes,
        db_create_all=_getbool("DB_CREATE_ALL", app_env_raw != "prod"),
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
