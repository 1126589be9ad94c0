"""Domain error taxonomy and its mapping onto HTTP responses.

Services raise these exceptions; they never build HTTP responses.  The
handlers registered by ``install_error_handlers`` translate them at the
boundary so every endpoint returns the same ``{"detail": ...}`` shape.

  AuthenticationError  -> 401  missing/invalid/expired token, bad password
  AuthorizationError   -> 403  wrong role, not enrolled
  NotFoundError        -> 404  course, lesson, certificate, enrollment absent
  ConflictError        -> 400  duplicate enrollment or email
  ValidationError      -> 400  missing or malformed input
  anything else        -> 500  generic message, traceback logged only
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors that carry a client-safe message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    # 400 rather than 409: existing clients branch on 400 for duplicates.
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotEnrolledError(AuthorizationError):
    def __init__(self, message: str = "You are not enrolled in this course") -> None:
        super().__init__(message)


class AlreadyEnrolledError(ConflictError):
    def __init__(
        self, message: str = "You are already enrolled in this course"
    ) -> None:
        super().__init__(message)


async def _service_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ServiceError)
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers,
    )


async def _request_validation_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    errors = exc.errors()
    logger.warning(
        "Rejected invalid request body  path=%s errors=%d",
        request.url.path,
        len(errors),
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": _describe_validation_errors(errors)},
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def _describe_validation_errors(errors) -> str:
    parts = []
    for err in errors:
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "invalid")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request"


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
