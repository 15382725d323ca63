"""
models.py — Data structures shared by the submission and delivery paths.

Defines:
    • BroadcastRecord  — the persisted submission
    • OutboundMessage  — one email addressed to every recipient
    • DeliveryOutcome  — how a delivery-worker invocation ended
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class DeliveryOutcome(str, Enum):
    """Terminal state of one delivery-worker invocation."""
    SENT          = "sent"
    BAD_KEY       = "bad_key"         # key did not decode
    NOT_FOUND     = "not_found"       # key decoded, no record / load failed
    RENDER_FAILED = "render_failed"   # email body template failed
    SEND_FAILED   = "send_failed"     # mail gateway rejected the message


@dataclass
class BroadcastRecord:
    """
    A single broadcast submission.

    ``account`` is always the authenticated submitter; ``sender`` is the
    display name used in the From and Subject headers.
    """
    geo_location: str
    body: str
    recipients: List[str] = field(default_factory=list)
    account: str = ""
    sender: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def display_name(self) -> str:
        return self.sender or self.account


@dataclass(frozen=True)
class OutboundMessage:
    """An email ready for the mail gateway."""
    sender: str
    to: List[str]
    subject: str
    body: str
