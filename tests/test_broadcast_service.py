"""
test_broadcast_service.py — Tests for the submit → store → enqueue → deliver
pipeline, without the HTTP layer.

Covers:
    • submit_broadcast: server-owned fields, store + enqueue hand-off
    • collaborator failures during submission
    • deliver_broadcast: composed message, single send, outcomes
    • at-least-once delivery (no dedup)

Run with:
    pytest tests/test_broadcast_service.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from brocast.app.broadcasts.models import BroadcastRecord, DeliveryOutcome
from brocast.app.broadcasts.service import (
    BROADCAST_KEY_PARAM,
    MAILWORKER_PATH,
    deliver_broadcast,
    submit_broadcast,
)
from brocast.app.broadcasts.store import BROADCAST_KIND, SqlBroadcastStore, encode_key
from brocast.app.core.errors import (
    MailDeliveryError,
    StoreError,
    TaskQueueError,
    TemplateRenderError,
)

ALICE = "alice@example.com"


def _make_record(
    geo_location: str = "40.0,-70.0",
    body: str = "hi",
    recipients=None,
    sender=None,
    account: str = "",
) -> BroadcastRecord:
    return BroadcastRecord(
        geo_location=geo_location,
        body=body,
        recipients=list(recipients) if recipients is not None else ["r@x.com"],
        sender=sender,
        account=account,
    )


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Submission
# ═══════════════════════════════════════════════════════════════════════════

class TestSubmitBroadcast:
    """Test submit_broadcast against in-memory collaborators."""

    @pytest.mark.asyncio
    async def test_stores_exactly_one_record(self, store, queue):
        await submit_broadcast(_make_record(), ALICE, store, queue)
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_account_is_caller_not_input(self, store, queue):
        record = _make_record(account="mallory@example.com")
        key = await submit_broadcast(record, ALICE, store, queue)
        stored = await store.get(key)
        assert stored.account == ALICE

    @pytest.mark.asyncio
    async def test_sender_defaults_to_account(self, store, queue):
        key = await submit_broadcast(_make_record(sender=None), ALICE, store, queue)
        assert (await store.get(key)).sender == ALICE

    @pytest.mark.asyncio
    async def test_explicit_sender_kept(self, store, queue):
        key = await submit_broadcast(_make_record(sender="Alice"), ALICE, store, queue)
        assert (await store.get(key)).sender == "Alice"

    @pytest.mark.asyncio
    async def test_timestamp_assigned_by_server(self, store, queue):
        fixed = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        key = await submit_broadcast(_make_record(), ALICE, store, queue, now=fixed)
        assert (await store.get(key)).timestamp == fixed

    @pytest.mark.asyncio
    async def test_default_timestamp_is_utc(self, store, queue):
        key = await submit_broadcast(_make_record(), ALICE, store, queue)
        assert (await store.get(key)).timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_enqueues_single_task_with_key(self, store, queue):
        key = await submit_broadcast(_make_record(), ALICE, store, queue)
        assert len(queue.tasks) == 1
        task = queue.tasks[0]
        assert task.target == MAILWORKER_PATH
        assert task.params == {BROADCAST_KEY_PARAM: key}

    @pytest.mark.asyncio
    async def test_recipient_order_preserved(self, store, queue):
        recipients = ["c@x.com", "a@x.com", "b@x.com"]
        key = await submit_broadcast(_make_record(recipients=recipients), ALICE, store, queue)
        assert (await store.get(key)).recipients == recipients

    @pytest.mark.asyncio
    async def test_each_submission_is_a_new_record(self, store, queue):
        k1 = await submit_broadcast(_make_record(), ALICE, store, queue)
        k2 = await submit_broadcast(_make_record(), ALICE, store, queue)
        assert k1 != k2
        assert len(store) == 2


class TestSubmitFailures:
    """Collaborator failures propagate; nothing is compensated."""

    @pytest.mark.asyncio
    async def test_store_failure_skips_enqueue(self, queue):
        failing_store = MagicMock()
        failing_store.put = AsyncMock(side_effect=StoreError("database unavailable"))
        with pytest.raises(StoreError):
            await submit_broadcast(_make_record(), ALICE, failing_store, queue)
        assert queue.tasks == []

    @pytest.mark.asyncio
    async def test_enqueue_failure_leaves_record(self, store):
        failing_queue = MagicMock()
        failing_queue.enqueue = AsyncMock(side_effect=TaskQueueError("redis down"))
        with pytest.raises(TaskQueueError):
            await submit_broadcast(_make_record(), ALICE, store, failing_queue)
        assert len(store) == 1


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Delivery
# ═══════════════════════════════════════════════════════════════════════════

class TestDeliverBroadcast:
    """Test deliver_broadcast with the simulated mail gateway."""

    @pytest.mark.asyncio
    async def test_sends_one_message(self, store, queue, mailer):
        key = await submit_broadcast(_make_record(), ALICE, store, queue)
        outcome = await deliver_broadcast(key, store, mailer)
        assert outcome == DeliveryOutcome.SENT
        assert len(mailer.outbox) == 1

    @pytest.mark.asyncio
    async def test_body_contains_maps_url(self, store, queue, mailer):
        key = await submit_broadcast(
            _make_record(geo_location="40.0,-70.0"), ALICE, store, queue,
        )
        await deliver_broadcast(key, store, mailer)
        assert "https://maps.google.com/maps?q=40.0,-70.0" in mailer.outbox[0].body

    @pytest.mark.asyncio
    async def test_all_recipients_in_one_message(self, store, queue, mailer):
        key = await submit_broadcast(
            _make_record(recipients=["a@x.com", "b@x.com"]), ALICE, store, queue,
        )
        await deliver_broadcast(key, store, mailer)
        assert len(mailer.outbox) == 1
        assert mailer.outbox[0].to == ["a@x.com", "b@x.com"]

    @pytest.mark.asyncio
    async def test_subject_and_from_use_sender(self, store, queue, mailer):
        key = await submit_broadcast(_make_record(sender="Alice"), ALICE, store, queue)
        await deliver_broadcast(key, store, mailer)
        message = mailer.outbox[0]
        assert message.subject == "Brocast from Alice"
        assert message.sender == "Alice <brocastmailer@gmail.com>"

    @pytest.mark.asyncio
    async def test_subject_falls_back_to_account(self, store, queue, mailer):
        key = await submit_broadcast(_make_record(sender=None), ALICE, store, queue)
        await deliver_broadcast(key, store, mailer)
        assert mailer.outbox[0].subject == f"Brocast from {ALICE}"

    @pytest.mark.asyncio
    async def test_delivering_twice_sends_twice(self, store, queue, mailer):
        """Documented limitation: no de-duplication of repeated tasks."""
        key = await submit_broadcast(_make_record(), ALICE, store, queue)
        await deliver_broadcast(key, store, mailer)
        await deliver_broadcast(key, store, mailer)
        assert len(mailer.outbox) == 2

    @pytest.mark.asyncio
    async def test_bad_key(self, store, mailer):
        outcome = await deliver_broadcast("not-a-key!!", store, mailer)
        assert outcome == DeliveryOutcome.BAD_KEY
        assert mailer.outbox == []

    @pytest.mark.asyncio
    async def test_empty_key(self, store, mailer):
        assert await deliver_broadcast("", store, mailer) == DeliveryOutcome.BAD_KEY

    @pytest.mark.asyncio
    async def test_unknown_record(self, store, mailer):
        key = encode_key(BROADCAST_KIND, 999)
        outcome = await deliver_broadcast(key, store, mailer)
        assert outcome == DeliveryOutcome.NOT_FOUND
        assert mailer.outbox == []

    @pytest.mark.asyncio
    async def test_store_read_failure(self, mailer):
        failing_store = MagicMock()
        failing_store.get = AsyncMock(side_effect=StoreError("connection reset"))
        outcome = await deliver_broadcast(encode_key(BROADCAST_KIND, 1), failing_store, mailer)
        assert outcome == DeliveryOutcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_database_unreachable_ends_delivery(self, mailer):
        session = AsyncMock()
        session.get = AsyncMock(side_effect=ConnectionRefusedError(111, "Connect call failed"))
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session
        factory.return_value.__aexit__.return_value = False
        sql_store = SqlBroadcastStore(factory)

        outcome = await deliver_broadcast(encode_key(BROADCAST_KIND, 1), sql_store, mailer)

        assert outcome == DeliveryOutcome.NOT_FOUND
        assert mailer.outbox == []

    @pytest.mark.asyncio
    async def test_send_failure_is_terminal(self, store, queue):
        key = await submit_broadcast(_make_record(), ALICE, store, queue)
        failing_mailer = MagicMock()
        failing_mailer.send = AsyncMock(side_effect=MailDeliveryError("relay refused"))
        outcome = await deliver_broadcast(key, store, failing_mailer)
        assert outcome == DeliveryOutcome.SEND_FAILED
        failing_mailer.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_render_failure(self, store, queue, mailer):
        key = await submit_broadcast(_make_record(), ALICE, store, queue)
        with patch(
            "brocast.app.broadcasts.service.compose_message",
            side_effect=TemplateRenderError("bad template"),
        ):
            outcome = await deliver_broadcast(key, store, mailer)
        assert outcome == DeliveryOutcome.RENDER_FAILED
        assert mailer.outbox == []

    @pytest.mark.asyncio
    async def test_no_recipients_fails_send(self, store, queue, mailer):
        key = await submit_broadcast(_make_record(recipients=[]), ALICE, store, queue)
        assert await deliver_broadcast(key, store, mailer) == DeliveryOutcome.SEND_FAILED

    @pytest.mark.asyncio
    async def test_success_logged(self, store, queue, mailer, caplog):
        caplog.set_level("INFO", logger="brocast.app.broadcasts.service")
        key = await submit_broadcast(_make_record(), ALICE, store, queue)
        await deliver_broadcast(key, store, mailer)
        assert f"Mail sent for brocast: {key}" in caplog.text
