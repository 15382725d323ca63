"""
worker.py — Celery worker that delivers queued tasks over HTTP.

Run with:
    celery -A brocast.app.tasks.worker worker --loglevel=info
or the ``brocast-worker`` console script.

A task POSTs its params as a form to TASK_TARGET_BASE_URL + target.

    2xx response            → done
    transport error/non-2xx → retried after retry_delay(n) seconds
    TASK_MAX_ATTEMPTS used  → task fails, logged at ERROR

Messages are acknowledged only when the task returns (acks_late), and a
retry is published before the original message is acknowledged. A worker
that dies mid-delivery therefore leaves the task on the broker, and a
task may be delivered more than once.
"""

from __future__ import annotations

from typing import Dict, Optional

import httpx
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging
from celery.signals import task_postrun, task_prerun
from celery.utils.log import get_task_logger

from brocast.app.core.config import settings
from brocast.app.core.logging_config import bind_log_context, clear_log_context, setup_logging
from brocast.app.core.middleware import REQUEST_ID_HEADER, TASK_ID_HEADER

logger = get_task_logger(__name__)

POST_TASK_NAME = "brocast.post_task"

celery_app = Celery("brocast", broker=settings.REDIS_URL)
celery_app.conf.update({
    "task_serializer": "json",
    "accept_content": ["json"],
    "timezone": "UTC",
    "enable_utc": True,
    "task_ignore_result": True,
    "task_default_queue": settings.TASK_QUEUE_NAME,

    "task_acks_late": True,
    "task_reject_on_worker_lost": True,
    "worker_prefetch_multiplier": 1,
    "worker_hijack_root_logger": False,
    "broker_connection_retry_on_startup": True,

    # Unacked messages are redelivered after this; keep it above the longest retry delay
    "broker_transport_options": {
        "visibility_timeout": max(3600, settings.TASK_RETRY_DELAY_MAX * 2),
    },
})


def retry_delay(retries: int) -> int:
    """Seconds to wait after failed attempt number ``retries + 1``."""
    return min(settings.TASK_RETRY_DELAY_MAX, settings.TASK_RETRY_DELAY * (2 ** retries))


def post_form(
    target: str,
    params: Dict[str, str],
    *,
    task_id: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> httpx.Response:
    """POST ``params`` to ``target``; raises httpx.HTTPError unless 2xx."""
    url = f"{settings.TASK_TARGET_BASE_URL.rstrip('/')}{target}"
    headers = {REQUEST_ID_HEADER: task_id, TASK_ID_HEADER: task_id} if task_id else {}
    if client is None:
        with httpx.Client(timeout=settings.TASK_HTTP_TIMEOUT) as own_client:
            response = own_client.post(url, data=params, headers=headers)
    else:
        response = client.post(url, data=params, headers=headers)
    response.raise_for_status()
    return response


@celery_app.task(
    bind=True,
    name=POST_TASK_NAME,
    acks_late=True,
    max_retries=max(settings.TASK_MAX_ATTEMPTS - 1, 0),
)
def post_task(self, target: str, params: Dict[str, str]) -> int:
    attempt = self.request.retries + 1
    try:
        response = post_form(target, params, task_id=self.request.id)
    except httpx.HTTPError as exc:
        if self.request.retries >= self.max_retries:
            logger.error(
                "Giving up on task for %s after %d attempt(s): %s", target, attempt, exc,
                extra={"attempt": attempt},
            )
            raise
        countdown = retry_delay(self.request.retries)
        logger.warning(
            "Task for %s failed on attempt %d, retrying in %ds: %s",
            target, attempt, countdown, exc,
            extra={"attempt": attempt},
        )
        raise self.retry(exc=exc, countdown=countdown)

    logger.info("Task delivered to %s on attempt %d", target, attempt,
                extra={"attempt": attempt, "status_code": response.status_code})
    return response.status_code


@celery_setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    setup_logging()


@task_prerun.connect
def bind_task_context(task_id=None, task=None, **kwargs) -> None:
    clear_log_context()
    bind_log_context(task_id=task_id)


@task_postrun.connect
def clear_task_context(**kwargs) -> None:
    clear_log_context()


def main() -> None:
    celery_app.worker_main([
        "worker",
        f"--loglevel={settings.LOG_LEVEL}",
        f"--queues={settings.TASK_QUEUE_NAME}",
    ])


if __name__ == "__main__":
    main()
