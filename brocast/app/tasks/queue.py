"""
queue.py — Enqueue side of the delivery task queue.

A task names a target endpoint on this service and a flat string-keyed
parameter map. The Celery worker (worker.py) POSTs the parameters as a form
to the target, at least once.

Backends (TASK_QUEUE_BACKEND):
    • celery — published to TASK_QUEUE_NAME on the Redis broker
    • memory — tasks kept in a list; nothing consumes them automatically
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from kombu.exceptions import OperationalError

from brocast.app.core.config import settings
from brocast.app.core.errors import TaskQueueError
from brocast.app.tasks.worker import post_task

logger = logging.getLogger(__name__)


@dataclass
class Task:
    target: str
    params: Dict[str, str]
    task_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class TaskQueue(Protocol):
    async def enqueue(self, target: str, params: Dict[str, str]) -> str: ...


def create_redis_client():
    """Async Redis client for the broker URL, used for health pings."""
    import redis.asyncio as aioredis
    return aioredis.from_url(settings.REDIS_URL, decode_responses=True)


class CeleryTaskQueue:
    """Publishes delivery tasks to the Celery broker."""

    def __init__(self, task=None, queue_name: Optional[str] = None):
        self._task = task if task is not None else post_task
        self.queue_name = queue_name or settings.TASK_QUEUE_NAME
        self._redis = None

    async def enqueue(self, target: str, params: Dict[str, str]) -> str:
        task = Task(target=target, params=dict(params))
        try:
            # kombu publishes synchronously
            await asyncio.to_thread(
                self._task.apply_async,
                args=(task.target, task.params),
                task_id=task.task_id,
                queue=self.queue_name,
                retry=False,
            )
        except (OperationalError, OSError) as exc:
            raise TaskQueueError(f"failed to enqueue task for {target}: {exc}") from exc
        logger.debug("Enqueued task %s → %s", task.task_id, target)
        return task.task_id

    async def ping(self) -> bool:
        if self._redis is None:
            self._redis = create_redis_client()
        return await self._redis.ping()

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class InMemoryTaskQueue:
    """Keeps enqueued tasks in order; ``drain`` hands them over once."""

    def __init__(self) -> None:
        self.tasks: List[Task] = []

    async def enqueue(self, target: str, params: Dict[str, str]) -> str:
        task = Task(target=target, params=dict(params))
        self.tasks.append(task)
        return task.task_id

    def drain(self) -> List[Task]:
        tasks, self.tasks = self.tasks, []
        return tasks


_queue: Optional[TaskQueue] = None


def get_task_queue() -> TaskQueue:
    """FastAPI dependency: the configured task queue."""
    global _queue
    if _queue is None:
        if settings.TASK_QUEUE_BACKEND == "memory":
            _queue = InMemoryTaskQueue()
        else:
            _queue = CeleryTaskQueue()
        logger.info("Task queue: %s", type(_queue).__name__)
    return _queue


async def close_task_queue() -> None:
    global _queue
    if isinstance(_queue, CeleryTaskQueue):
        await _queue.close()
    _queue = None
