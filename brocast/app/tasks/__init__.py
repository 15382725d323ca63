"""
tasks — Asynchronous delivery tasks.

    queue   — enqueue side (Celery or in-memory)
    worker  — Celery app and the task that POSTs to a target endpoint
"""
