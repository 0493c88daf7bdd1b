"""Tests for the structured logging system (invoice_kernel/logging_config.py)."""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from invoice_kernel.domain.lifecycle import InvoiceStatus
from invoice_kernel.exceptions import InvalidTransitionError
from invoice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "invoice_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info(
            "invoice_created",
            extra={"invoice_number": "FAC-7", "total_cents": 6000},
        )

        record = _parse_log(stream)
        assert record["invoice_number"] == "FAC-7"
        assert record["total_cents"] == 6000

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(correlation_id="abc-123", order_id="ord-1"):
            get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["order_id"] == "ord-1"
        assert "invoice_id" not in record

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_invoicing_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InvalidTransitionError("inv-1", "paid", "cancelled", "terminal status")
        except InvalidTransitionError:
            get_logger("test").error("transition_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INVALID_TRANSITION"
        assert record["exc_invoice_id"] == "inv-1"
        assert record["exc_from_status"] == "paid"
        assert record["exc_to_status"] == "cancelled"

    def test_special_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "values",
            extra={
                "invoice_ref": uid,
                "amount": Decimal("12.50"),
                "state": InvoiceStatus.OVERDUE,
                "due": datetime(2024, 1, 31, tzinfo=timezone.utc),
            },
        )

        record = _parse_log(stream)
        assert record["invoice_ref"] == str(uid)
        assert record["amount"] == "12.50"
        assert record["state"] == "overdue"
        assert record["due"] == "2024-01-31T00:00:00+00:00"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        for i in range(5):
            logger.info("line", extra={"i": i})

        records = _parse_all_logs(stream)
        assert [r["i"] for r in records] == [0, 1, 2, 3, 4]


class TestLogContext:

    def test_empty_by_default(self):
        assert LogContext.get_all() == {}

    def test_bind_sets_and_restores(self):
        with LogContext.bind(correlation_id="c1", invoice_id="inv"):
            assert LogContext.get_all() == {"correlation_id": "c1", "invoice_id": "inv"}
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer_value(self):
        with LogContext.bind(order_id="outer"):
            with LogContext.bind(order_id="inner", invoice_id="inv"):
                assert LogContext.get_all()["order_id"] == "inner"
            assert LogContext.get_all() == {"order_id": "outer"}

    def test_bind_skips_none(self):
        with LogContext.bind(order_id="kept"):
            with LogContext.bind(order_id=None):
                assert LogContext.get_all()["order_id"] == "kept"

    def test_bind_stringifies_values(self):
        uid = uuid4()
        with LogContext.bind(invoice_id=uid):
            assert LogContext.get_all()["invoice_id"] == str(uid)

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(order_id="o1"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            with LogContext.bind(tenant="acme"):
                pass

    def test_clear(self):
        with LogContext.bind(order_id="o1"):
            LogContext.clear()
            assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        first, _ = _make_handler()
        second, _ = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        handlers = logging.getLogger("invoice_kernel").handlers
        assert first in handlers
        assert second not in handlers

    def test_get_logger_returns_child(self):
        assert get_logger("services.invoice").name == "invoice_kernel.services.invoice"

    def test_level_respected(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("hidden")
        logger.warning("shown")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["shown"]
