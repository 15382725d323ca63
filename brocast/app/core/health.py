"""
Health check aggregation — deep health probe for the service collaborators.

Checks:
    • Broadcast store (SQL engine or in-memory)
    • Task queue (Celery broker ping or in-memory)
    • Mail gateway configuration
    • Landing page templates

Returns a structured health report suitable for liveness/readiness probes
and load balancer health checks.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from redis.exceptions import RedisError

from brocast.app.core.config import settings
from brocast.app.core.database import get_engine
from brocast.app.tasks.queue import CeleryTaskQueue, get_task_queue

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


async def check_store() -> ComponentHealth:
    """Check the broadcast store can answer a trivial query."""
    comp = ComponentHealth(name="store", details={"backend": settings.STORE_BACKEND})
    start = time.monotonic()
    if settings.STORE_BACKEND == "memory":
        comp.message = "In-memory store"
    else:
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            comp.message = "Database reachable"
            comp.details["url"] = settings.DATABASE_URL.split("@")[-1]
        except (SQLAlchemyError, OSError) as e:
            comp.status = HealthStatus.UNHEALTHY
            comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_task_queue() -> ComponentHealth:
    """Check the Celery broker (Redis) answers PING."""
    comp = ComponentHealth(name="task_queue", details={"backend": settings.TASK_QUEUE_BACKEND})
    start = time.monotonic()
    if settings.TASK_QUEUE_BACKEND == "memory":
        comp.message = "In-memory queue (no consumer)"
        comp.status = HealthStatus.DEGRADED
    else:
        queue = get_task_queue()
        try:
            if isinstance(queue, CeleryTaskQueue):
                await queue.ping()
            comp.message = "Queue reachable"
            comp.details["queue"] = settings.TASK_QUEUE_NAME
        except (RedisError, OSError) as e:
            comp.status = HealthStatus.UNHEALTHY
            comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_mail() -> ComponentHealth:
    """Check the mail provider is usable as configured."""
    comp = ComponentHealth(name="mail", details={"provider": settings.MAIL_PROVIDER})
    if settings.MAIL_PROVIDER == "simulation":
        comp.status = HealthStatus.DEGRADED
        comp.message = "Simulated delivery — no mail leaves the service"
    elif settings.MAIL_PROVIDER == "smtp" and settings.SMTP_HOST:
        comp.message = f"SMTP relay {settings.SMTP_HOST}:{settings.SMTP_PORT}"
    else:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Mail provider '{settings.MAIL_PROVIDER}' is not configured"
    return comp


async def check_templates() -> ComponentHealth:
    """Check the landing page templates exist."""
    comp = ComponentHealth(name="templates")
    template_dir = Path(settings.TEMPLATE_DIR)
    missing = [n for n in ("base.html", "root.html") if not (template_dir / n).is_file()]
    if missing:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Missing templates: {', '.join(missing)}"
    else:
        comp.message = "Templates present"
    comp.details = {"dir": str(template_dir)}
    return comp


async def run_health_check() -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    for check in (check_store, check_task_queue, check_mail, check_templates):
        report.components.append(await check())

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
