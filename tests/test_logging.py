"""Tests for trialflow_kernel.logging_config: JSON records and log context."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from trialflow_kernel.domain.values import SessionStatus
from trialflow_kernel.exceptions import InvalidSessionStateError
from trialflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _isolated_logging():
    """Fresh logging state per test; the suite-wide DEBUG setup afterwards."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


class JsonLines:
    """A StringIO-backed handler whose output is read back as dicts."""

    def __init__(self) -> None:
        self.stream = StringIO()
        self.handler = logging.StreamHandler(self.stream)
        self.handler.setFormatter(StructuredFormatter())

    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    def only(self) -> dict:
        (record,) = self.records()
        return record


@pytest.fixture
def out() -> JsonLines:
    lines = JsonLines()
    configure_logging(handler=lines.handler)
    return lines


log = get_logger("test")


class TestStructuredFormatter:
    def test_envelope(self, out):
        log.info("hello")

        record = out.only()
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "trialflow.test"
        assert record["ts"].endswith("+00:00")

    def test_extra_fields(self, out):
        log.info("slot_reserved", extra={"available_slots": 4})
        assert out.only()["available_slots"] == 4

    def test_context_fields(self, out):
        LogContext.set(correlation_id="abc-123", session_id="sess-1", actor_id="tester-1")
        log.info("session_transition")

        record = out.only()
        assert record["correlation_id"] == "abc-123"
        assert record["session_id"] == "sess-1"
        assert record["actor_id"] == "tester-1"

    def test_context_wins_over_extra(self, out):
        LogContext.set(session_id="from-context")
        log.info("msg", extra={"session_id": "from-extra"})
        assert out.only()["session_id"] == "from-context"

    def test_no_context_keys_when_unbound(self, out):
        log.info("bare")
        record = out.only()
        assert "correlation_id" not in record
        assert "session_id" not in record

    def test_domain_values(self, out):
        uid = uuid4()
        log.info(
            "typed",
            extra={
                "session_uuid": uid,
                "amount": Decimal("10.50"),
                "day": date(2024, 1, 2),
                "to_status": SessionStatus.ACCEPTED,
                "reasons": ("a", "b"),
            },
        )

        record = out.only()
        assert record["session_uuid"] == str(uid)
        assert record["amount"] == "10.50"
        assert record["day"] == "2024-01-02"
        assert record["to_status"] == "ACCEPTED"
        assert record["reasons"] == ["a", "b"]

    def test_plain_exception(self, out):
        try:
            raise ValueError("boom")
        except ValueError:
            log.error("failed", exc_info=True)

        record = out.only()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_trialflow_error_attributes(self, out):
        try:
            raise InvalidSessionStateError("s-1", "validate_test", "ACCEPTED", ["SUBMITTED"])
        except InvalidSessionStateError:
            log.exception("command_failed")

        record = out.only()
        assert record["exc_code"] == "INVALID_SESSION_STATE"
        assert record["exc_session_id"] == "s-1"
        assert record["exc_current_status"] == "ACCEPTED"
        assert record["exc_required_statuses"] == ["SUBMITTED"]

    def test_default_level_is_info(self, out):
        log.debug("hidden")
        log.info("first")
        log.warning("second")
        assert [r["message"] for r in out.records()] == ["first", "second"]


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", campaign_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "campaign_id": "y"}

    def test_set_is_additive_and_skips_none(self):
        LogContext.set(correlation_id="a")
        LogContext.set(trace_id="b", session_id=None)
        assert LogContext.get_all() == {"correlation_id": "a", "trace_id": "b"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_outer_values(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", session_id=uuid4()):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id="tester-1"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_bind_stringifies(self):
        uid = uuid4()
        with LogContext.bind(session_id=uid):
            assert LogContext.get_all()["session_id"] == str(uid)

    def test_unknown_field_refused(self):
        with pytest.raises(ValueError, match="event_id"):
            LogContext.set(event_id="e-1")


class TestConfigureLogging:
    def test_second_call_is_ignored(self):
        first, second = JsonLines(), JsonLines()
        configure_logging(handler=first.handler)
        configure_logging(handler=second.handler)

        log.info("once")

        assert len(first.records()) == 1
        assert second.records() == []

    def test_does_not_propagate(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("trialflow").propagate is False

    def test_level_name_from_config(self):
        lines = JsonLines()
        configure_logging(level="debug", handler=lines.handler)
        log.debug("visible")
        assert lines.only()["level"] == "DEBUG"

    def test_reset_allows_reconfiguration(self):
        first = JsonLines()
        configure_logging(handler=first.handler)
        reset_logging()
        second = JsonLines()
        configure_logging(level=logging.DEBUG, handler=second.handler)

        log.debug("after_reset")

        assert first.records() == []
        assert second.only()["message"] == "after_reset"
