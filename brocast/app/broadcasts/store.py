"""
store.py — Broadcast persistence and opaque reference keys.

A stored broadcast is addressed by a key string that names the entity kind
and its store-assigned id:

    key = urlsafe_b64encode(b"Broadcast:<id>") with padding stripped

Keys round-trip through a form parameter unchanged, so the submission path
can hand one to the task queue and the delivery worker can load the record
back from it.

Two stores share the same interface:
    SqlBroadcastStore       — SQLAlchemy async session per call
    InMemoryBroadcastStore  — process-local dict, for tests and local runs
"""

from __future__ import annotations

import base64
import binascii
import itertools
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from brocast.app.broadcasts.models import BroadcastRecord
from brocast.app.core.config import settings
from brocast.app.core.database import Base, get_session_factory
from brocast.app.core.errors import KeyDecodeError, RecordNotFoundError, StoreError

logger = logging.getLogger(__name__)

BROADCAST_KIND = "Broadcast"


# ═══════════════════════════════════════════════════════════════════════════
# Key codec
# ═══════════════════════════════════════════════════════════════════════════

def encode_key(kind: str, entity_id: int) -> str:
    raw = f"{kind}:{entity_id}".encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_key(key: str, kind: str = BROADCAST_KIND) -> int:
    """
    Decode an opaque key back to the entity id.

    Raises KeyDecodeError if the key is not valid base64, names another
    kind, or does not carry a positive integer id.
    """
    if not key:
        raise KeyDecodeError("empty key")
    padded = key + "=" * (-len(key) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise KeyDecodeError(f"malformed key {key!r}: {exc}") from exc

    key_kind, sep, id_part = raw.partition(":")
    if not sep or key_kind != kind:
        raise KeyDecodeError(f"key {key!r} does not name a {kind}")
    if not id_part.isdigit() or int(id_part) <= 0:
        raise KeyDecodeError(f"key {key!r} has an invalid id")
    return int(id_part)


# ═══════════════════════════════════════════════════════════════════════════
# Store interface
# ═══════════════════════════════════════════════════════════════════════════

class BroadcastStore(Protocol):
    async def put(self, record: BroadcastRecord) -> str: ...

    async def get(self, key: str) -> BroadcastRecord: ...


# ═══════════════════════════════════════════════════════════════════════════
# SQL store
# ═══════════════════════════════════════════════════════════════════════════

class BroadcastRow(Base):
    __tablename__ = "broadcasts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    geo_location: Mapped[str] = mapped_column(Text, default="")
    body: Mapped[str] = mapped_column(Text, default="")
    recipients: Mapped[List[str]] = mapped_column(JSON, default=list)
    account: Mapped[str] = mapped_column(String(320), index=True)
    sender: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    @classmethod
    def from_record(cls, record: BroadcastRecord) -> "BroadcastRow":
        return cls(
            geo_location=record.geo_location,
            body=record.body,
            recipients=list(record.recipients),
            account=record.account,
            sender=record.sender,
            timestamp=record.timestamp.astimezone(timezone.utc),
        )

    def to_record(self) -> BroadcastRecord:
        timestamp = self.timestamp
        # SQLite hands back naive datetimes; stored values are UTC
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return BroadcastRecord(
            geo_location=self.geo_location,
            body=self.body,
            recipients=list(self.recipients or []),
            account=self.account,
            sender=self.sender,
            timestamp=timestamp,
        )


class SqlBroadcastStore:
    """Broadcast store backed by the SQLAlchemy async engine."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_factory = session_factory

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def put(self, record: BroadcastRecord) -> str:
        row = BroadcastRow.from_record(record)
        try:
            async with self._sessions()() as session:
                session.add(row)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"failed to store broadcast: {exc}") from exc
        return encode_key(BROADCAST_KIND, row.id)

    async def get(self, key: str) -> BroadcastRecord:
        entity_id = decode_key(key)
        try:
            async with self._sessions()() as session:
                row = await session.get(BroadcastRow, entity_id)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreError(f"failed to load broadcast {key}: {exc}") from exc
        if row is None:
            raise RecordNotFoundError(key)
        return row.to_record()


# ═══════════════════════════════════════════════════════════════════════════
# In-memory store
# ═══════════════════════════════════════════════════════════════════════════

class InMemoryBroadcastStore:
    """Process-local store; ids start at 1 and are never reused."""

    def __init__(self) -> None:
        self._records: Dict[int, BroadcastRecord] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._records)

    def records(self) -> List[BroadcastRecord]:
        return list(self._records.values())

    async def put(self, record: BroadcastRecord) -> str:
        entity_id = next(self._ids)
        self._records[entity_id] = replace(record, recipients=list(record.recipients))
        return encode_key(BROADCAST_KIND, entity_id)

    async def get(self, key: str) -> BroadcastRecord:
        record = self._records.get(decode_key(key))
        if record is None:
            raise RecordNotFoundError(key)
        return replace(record, recipients=list(record.recipients))


# ═══════════════════════════════════════════════════════════════════════════
# Dependency
# ═══════════════════════════════════════════════════════════════════════════

_store: Optional[BroadcastStore] = None


def get_broadcast_store() -> BroadcastStore:
    """FastAPI dependency: the configured broadcast store."""
    global _store
    if _store is None:
        if settings.STORE_BACKEND == "memory":
            _store = InMemoryBroadcastStore()
        else:
            _store = SqlBroadcastStore()
        logger.info("Broadcast store: %s", type(_store).__name__)
    return _store
