"""
service.py — The submit → store → enqueue → deliver pipeline.

    submit_broadcast   (request path)
        1. stamp account + timestamp on the record
        2. store it, obtaining an opaque key
        3. enqueue a delivery task carrying only that key

    deliver_broadcast  (task path)
        1. load the record by key
        2. compose one message to every recipient
        3. hand it to the mail gateway

Submission errors propagate to the HTTP layer. Delivery errors are logged
and reported as a DeliveryOutcome; there is no caller to surface them to.

A record written before a failed enqueue stays in the store unreferenced.
Delivering the same key twice sends the mail twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from brocast.app.broadcasts.composer import compose_message
from brocast.app.broadcasts.mailer import MailGateway
from brocast.app.broadcasts.models import BroadcastRecord, DeliveryOutcome
from brocast.app.broadcasts.store import BroadcastStore
from brocast.app.core.errors import (
    KeyDecodeError,
    MailDeliveryError,
    StoreError,
    TemplateRenderError,
)
from brocast.app.core.logging_config import bind_log_context
from brocast.app.tasks.queue import TaskQueue

logger = logging.getLogger(__name__)

MAILWORKER_PATH = "/mailworker"
BROADCAST_KEY_PARAM = "brocast_key"


async def submit_broadcast(
    record: BroadcastRecord,
    account: str,
    store: BroadcastStore,
    queue: TaskQueue,
    *,
    now: Optional[datetime] = None,
) -> str:
    """
    Persist ``record`` as submitted by ``account`` and schedule delivery.

    Returns the opaque key of the stored record. Raises StoreError or
    TaskQueueError (both InternalError) when a collaborator fails.
    """
    record.account = account
    if not record.sender:
        record.sender = account
    record.timestamp = now or datetime.now(timezone.utc)

    key = await store.put(record)
    bind_log_context(broadcast_key=key)

    logger.info(
        "Dispatching task to process brocast: %s", key,
        extra={"recipient_count": len(record.recipients)},
    )
    await queue.enqueue(MAILWORKER_PATH, {BROADCAST_KEY_PARAM: key})
    return key


async def deliver_broadcast(
    key: str,
    store: BroadcastStore,
    mailer: MailGateway,
) -> DeliveryOutcome:
    """Send the email for the broadcast stored under ``key``."""
    bind_log_context(broadcast_key=key or None)
    logger.info("Processing brocast: %s", key)

    try:
        record = await store.get(key)
    except KeyDecodeError as exc:
        logger.error("Cannot decode brocast key %r: %s", key, exc)
        return DeliveryOutcome.BAD_KEY
    except StoreError as exc:
        logger.error("Cannot load brocast %s: %s", key, exc)
        return DeliveryOutcome.NOT_FOUND

    logger.info("Sending mail for message: %s", key)

    try:
        message = compose_message(record)
    except TemplateRenderError as exc:
        logger.error("Cannot render mail for brocast %s: %s", key, exc)
        return DeliveryOutcome.RENDER_FAILED

    try:
        await mailer.send(message)
    except MailDeliveryError as exc:
        logger.error("Mail for brocast %s failed: %s", key, exc)
        return DeliveryOutcome.SEND_FAILED

    logger.info(
        "Mail sent for brocast: %s", key,
        extra={"recipient_count": len(message.to)},
    )
    return DeliveryOutcome.SENT
