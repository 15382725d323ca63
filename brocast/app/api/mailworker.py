"""
FastAPI route: delivery worker, called by the Celery post task.

    POST /mailworker   — form field ``brocast_key``

Always answers 200 with an empty body. Failures are terminal for the
invocation and only logged, so the task is not retried.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Form, Response

from brocast.app.broadcasts.mailer import MailGateway, get_mail_gateway
from brocast.app.broadcasts.service import deliver_broadcast
from brocast.app.broadcasts.store import BroadcastStore, get_broadcast_store

router = APIRouter(tags=["internal"])


@router.post("/mailworker", response_class=Response, include_in_schema=False)
async def mail_worker(
    brocast_key: str = Form(""),
    store: BroadcastStore = Depends(get_broadcast_store),
    mailer: MailGateway = Depends(get_mail_gateway),
) -> Response:
    await deliver_broadcast(brocast_key, store, mailer)
    return Response(status_code=200)
