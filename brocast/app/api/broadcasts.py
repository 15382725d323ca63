"""
FastAPI route: broadcast submission.

    POST /broadcasts   — store a broadcast and schedule its email (201)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError
from starlette.requests import ClientDisconnect

from brocast.app.api.schemas import BroadcastRequest
from brocast.app.broadcasts.service import submit_broadcast
from brocast.app.broadcasts.store import BroadcastStore, get_broadcast_store
from brocast.app.core.errors import BadRequestError
from brocast.app.core.identity import get_current_account
from brocast.app.tasks.queue import TaskQueue, get_task_queue

router = APIRouter(tags=["broadcasts"])


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts) or str(exc)


@router.post(
    "/broadcasts",
    status_code=201,
    response_class=Response,
    summary="Submit a broadcast",
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": BroadcastRequest.model_json_schema()}},
        },
    },
)
async def create_broadcast(
    request: Request,
    account: str = Depends(get_current_account),
    store: BroadcastStore = Depends(get_broadcast_store),
    queue: TaskQueue = Depends(get_task_queue),
) -> Response:
    try:
        raw = await request.body()
    except ClientDisconnect as exc:
        raise BadRequestError(f"failed to read request body: {exc}") from exc

    try:
        payload = BroadcastRequest.model_validate_json(raw)
    except ValidationError as exc:
        raise BadRequestError(_validation_message(exc)) from exc

    await submit_broadcast(payload.to_record(), account, store, queue)
    return Response(status_code=201)
