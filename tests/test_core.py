"""
test_core.py — Identity, error hierarchy, templating and log formatting.

Run with:
    pytest tests/test_core.py -v
"""

from __future__ import annotations

import json
import logging

import pytest

from brocast.app.core.errors import (
    BadRequestError,
    InternalError,
    KeyDecodeError,
    MailDeliveryError,
    RecordNotFoundError,
    StoreError,
    TaskQueueError,
    TemplateRenderError,
    UnauthorizedError,
)
from brocast.app.core.identity import resolve_account
from brocast.app.core.logging_config import (
    JSONFormatter,
    LogContextFilter,
    PrettyFormatter,
    bind_log_context,
    clear_log_context,
    get_log_context,
)
from brocast.app.core.templating import TemplateRenderer

HEADER = "X-Authenticated-User"


class TestIdentity:

    def test_resolves_account(self):
        assert resolve_account({HEADER: "alice@example.com"}, HEADER) == "alice@example.com"

    def test_strips_whitespace(self):
        assert resolve_account({HEADER: "  bob  "}, HEADER) == "bob"

    @pytest.mark.parametrize("headers", [{}, {HEADER: ""}, {HEADER: "   "}])
    def test_missing_identity(self, headers):
        with pytest.raises(UnauthorizedError, match="login required"):
            resolve_account(headers, HEADER)


class TestErrorHierarchy:

    @pytest.mark.parametrize("exc_cls, status", [
        (BadRequestError, 400),
        (KeyDecodeError, 400),
        (UnauthorizedError, 401),
        (InternalError, 500),
        (StoreError, 500),
        (TaskQueueError, 500),
        (MailDeliveryError, 500),
        (TemplateRenderError, 500),
    ])
    def test_status_codes(self, exc_cls, status):
        assert exc_cls.status_code == status

    def test_not_found_is_store_error(self):
        exc = RecordNotFoundError("abc")
        assert isinstance(exc, StoreError)
        assert "abc" in exc.message


class TestTemplateRenderer:

    def test_renders_context(self, tmp_path):
        (tmp_path / "hello.html").write_text("Hello {{ name }}")
        assert TemplateRenderer(str(tmp_path)).render("hello.html", {"name": "Ann"}) == "Hello Ann"

    def test_autoescapes_html(self, tmp_path):
        (tmp_path / "hello.html").write_text("{{ name }}")
        out = TemplateRenderer(str(tmp_path)).render("hello.html", {"name": "<b>"})
        assert out == "&lt;b&gt;"

    def test_missing_template(self, tmp_path):
        with pytest.raises(TemplateRenderError, match="nope.html"):
            TemplateRenderer(str(tmp_path)).render("nope.html")

    def test_undefined_variable(self, tmp_path):
        (tmp_path / "hello.html").write_text("Hello {{ name }}")
        with pytest.raises(TemplateRenderError):
            TemplateRenderer(str(tmp_path)).render("hello.html")


class TestLogContext:

    def setup_method(self):
        clear_log_context()

    def teardown_method(self):
        clear_log_context()

    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            "brocast.test", logging.INFO, __file__, 10, "Mail sent for brocast: %s",
            ("abc",), None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        LogContextFilter().filter(record)
        return record

    def test_bind_merges_and_skips_none(self):
        bind_log_context(request_id="req-1")
        bind_log_context(broadcast_key="abc", task_id=None)
        assert get_log_context() == {"request_id": "req-1", "broadcast_key": "abc"}

    def test_filter_stamps_bound_fields(self):
        bind_log_context(task_id="task-1", broadcast_key="abc")
        record = self._record()
        assert record.task_id == "task-1"
        assert record.broadcast_key == "abc"
        assert record.request_id is None

    def test_json_omits_unbound_fields(self):
        entry = json.loads(JSONFormatter().format(self._record()))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "brocast.test"
        assert entry["message"] == "Mail sent for brocast: abc"
        assert "task_id" not in entry
        assert "broadcast_key" not in entry

    def test_json_includes_context_and_extra(self):
        bind_log_context(request_id="req-1", broadcast_key="abc")
        entry = json.loads(JSONFormatter().format(self._record(recipient_count=2)))
        assert entry["request_id"] == "req-1"
        assert entry["broadcast_key"] == "abc"
        assert entry["recipient_count"] == 2

    def test_pretty_shows_ids(self):
        bind_log_context(request_id="0123456789abcdef", task_id="task-123456789")
        line = PrettyFormatter().format(self._record())
        assert "[01234567 task=task-123]" in line
        assert "Mail sent for brocast: abc" in line
