"""Request context middleware: a unique ID and a summary line per request.

Concurrent requests interleave their log lines on the same event loop
thread.  The request ID (taken from ``X-Request-ID`` or generated) is
kept in a ``ContextVar`` so every line logged while serving a request
can be tied back to it, whichever module emitted it.  Context variables
are per-task, unlike thread-locals, which is what async code needs.

``user_id_var`` is filled in by the auth dependency once a token has
been validated, so log lines after that point also carry the caller.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
user_id_var: ContextVar[int | None] = ContextVar("user_id", default=None)


class RequestContextFilter(logging.Filter):
    """Copy the current request context onto every LogRecord.

    Attached to the log handler by ``setup_logging``.  A filter rather
    than a formatter: formatters can only read attributes a record
    already has, filters can add them.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_var.get()  # type: ignore[attr-defined]
        return True


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request and log one summary line.

    The ID is echoed back in the ``X-Request-ID`` response header so a
    client can quote it in a bug report.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        user_id_var.set(None)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
