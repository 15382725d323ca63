"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • The three error kinds surfaced to HTTP callers
      (BadRequest, Unauthorized, InternalError)
    • Collaborator failures as subclasses of those kinds, so a handler can
      let them propagate and still produce the right status
    • Plain-text error responses carrying the raw error message

Usage:
    from brocast.app.core.errors import BadRequestError, register_error_handlers

    raise BadRequestError("unexpected end of JSON input")
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from brocast.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class BrocastError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)
        self.message = message


class BadRequestError(BrocastError):
    """Malformed client input (400)."""

    status_code = 400
    error_code = "BAD_REQUEST"


class UnauthorizedError(BrocastError):
    """No resolvable caller identity (401)."""

    status_code = 401
    error_code = "UNAUTHORIZED"


class InternalError(BrocastError):
    """A collaborator failed (500)."""

    status_code = 500
    error_code = "INTERNAL_ERROR"


# ── Collaborator failures ──

class KeyDecodeError(BadRequestError):
    """An opaque reference key could not be decoded."""

    error_code = "BAD_KEY"


class StoreError(InternalError):
    """The broadcast store rejected a read or write."""

    error_code = "STORE_ERROR"


class RecordNotFoundError(StoreError):
    """No broadcast exists for a decoded key."""

    error_code = "NOT_FOUND"

    def __init__(self, key: str):
        super().__init__(f"no such entity: {key}")
        self.key = key


class TaskQueueError(InternalError):
    """A delivery task could not be enqueued."""

    error_code = "TASK_QUEUE_ERROR"


class MailDeliveryError(InternalError):
    """The mail gateway refused or failed to send a message."""

    error_code = "MAIL_DELIVERY_ERROR"


class TemplateRenderError(InternalError):
    """A template could not be loaded or rendered."""

    error_code = "TEMPLATE_ERROR"


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(BrocastError)
    async def handle_brocast_error(request: Request, exc: BrocastError):
        log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            log_level,
            "%s %s failed [%s]: %s",
            request.method, request.url.path, exc.error_code, exc.message,
        )
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        return PlainTextResponse(message or "Internal server error", status_code=500)
