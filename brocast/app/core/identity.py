"""
Caller identity resolution.

Every request reaches the service through an authentication gate, which
forwards the authenticated account in a trusted header (AUTH_USER_HEADER).
Handlers receive the account through the ``get_current_account`` dependency
rather than looking it up themselves.
"""

from __future__ import annotations

import logging

from fastapi import Request

from brocast.app.core.config import settings
from brocast.app.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def resolve_account(headers, header_name: str) -> str:
    """Return the stable account identifier carried in ``headers``."""
    account = (headers.get(header_name) or "").strip()
    if not account:
        raise UnauthorizedError("login required")
    return account


async def get_current_account(request: Request) -> str:
    """FastAPI dependency: the authenticated caller's account."""
    return resolve_account(request.headers, settings.AUTH_USER_HEADER)
