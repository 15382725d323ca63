"""
Request middleware — log context and access log.

Each request gets a correlation id (the caller's X-Request-ID, or a fresh
one) bound into the log context. Calls from the Celery worker to
/mailworker also carry X-Task-ID, which is bound as ``task_id`` so every
line logged while delivering a broadcast names the task that caused it.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from brocast.app.core.logging_config import bind_log_context, clear_log_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
TASK_ID_HEADER = "X-Task-ID"

# Probes and docs are not access-logged
_UNLOGGED_PATHS = frozenset({"/health/live", "/docs", "/redoc", "/openapi.json", "/favicon.ico"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Bind request ids for logging and write one access-log line per request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        path = request.url.path

        clear_log_context()
        bind_log_context(
            request_id=request_id,
            task_id=request.headers.get(TASK_ID_HEADER),
            method=request.method,
            endpoint=path,
            client_ip=request.client.host if request.client else None,
        )

        start = time.perf_counter()
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception:
            status_code = 500
            raise
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            if path not in _UNLOGGED_PATHS:
                logger.log(
                    logging.WARNING if status_code >= 400 else logging.INFO,
                    "%s %s → %d (%.1fms)", request.method, path, status_code, elapsed_ms,
                    extra={"duration_ms": round(elapsed_ms, 1), "status_code": status_code},
                )
            clear_log_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = f"{elapsed_ms:.1f}ms"
        return response
