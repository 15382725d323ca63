"""
Structured logging configuration.

Provides:
    • JSON log lines in production, coloured console lines elsewhere
    • A log context (request_id, task_id, broadcast_key, ...) bound once per
      request or task and stamped onto every record logged while it is bound

The web app and the Celery worker both call ``setup_logging``. The request
middleware binds the request and task ids; the delivery path adds the
broadcast key. Call sites then log plain messages:

    from brocast.app.core.logging_config import bind_log_context

    bind_log_context(broadcast_key=key)
    logger.info("Mail sent for brocast: %s", key)
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from brocast.app.core.config import settings

_log_context: ContextVar[Dict[str, Any]] = ContextVar("brocast_log_context", default={})

# Fields copied from the log context onto each record, in output order
CONTEXT_FIELDS = ("request_id", "task_id", "broadcast_key", "method", "endpoint", "client_ip")

# Per-call ``extra`` fields worth keeping in JSON output
_EXTRA_FIELDS = ("recipient_count", "attempt", "duration_ms", "status_code")


def bind_log_context(**fields: Any) -> None:
    """Add fields to the current log context; None values are dropped."""
    merged = dict(_log_context.get())
    merged.update({k: v for k, v in fields.items() if v is not None})
    _log_context.set(merged)


def clear_log_context() -> None:
    _log_context.set({})


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


class LogContextFilter(logging.Filter):
    """Copy the bound log context onto each record as attributes."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = _log_context.get()
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, ctx.get(name))
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS + _EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(entry, default=str)


class PrettyFormatter(logging.Formatter):
    """Coloured single-line output with the ids that are bound."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        tags = []
        request_id = getattr(record, "request_id", None)
        if request_id:
            tags.append(str(request_id)[:8])
        task_id = getattr(record, "task_id", None)
        if task_id:
            tags.append(f"task={str(task_id)[:8]}")
        tag_str = f" [{' '.join(tags)}]" if tags else ""

        line = (
            f"{color}{self.formatTime(record, '%H:%M:%S')} {record.levelname:8s}{self.RESET}"
            f"{tag_str} {record.name}: {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[1]:
            line += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return line


def setup_logging(json_logs: Optional[bool] = None) -> None:
    """Install one stdout handler on the root logger."""
    if json_logs is None:
        json_logs = settings.is_production

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(LogContextFilter())
    handler.setFormatter(JSONFormatter() if json_logs else PrettyFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for noisy in ("uvicorn.access", "httpx", "httpcore", "kombu", "celery.redirected"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DATABASE_ECHO else logging.WARNING
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
