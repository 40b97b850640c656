"""Tests for the structured logging system (ar_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ar_kernel.exceptions import OverAllocationError
from ar_kernel.logging_config import (
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
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    return _parse_all_logs(stream)[0]


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "ar_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("settled", extra={"invoice_count": 2, "amount": Decimal("120.00")})

        record = _parse_log(stream)
        assert record["invoice_count"] == 2
        assert record["amount"] == "120.00"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        tenant = uuid4()
        LogContext.set(tenant_id=tenant, operation="settle_fifo")
        get_logger("test").info("msg")

        record = _parse_log(stream)
        assert record["tenant_id"] == str(tenant)
        assert record["operation"] == "settle_fifo"

    def test_ledger_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise OverAllocationError("Invoice", "inv-1", Decimal("150.00"), Decimal("100.00"))
        except OverAllocationError:
            get_logger("test").warning("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "OVER_ALLOCATION"
        assert record["exc_type"] == "OverAllocationError"
        assert record["exc_requested"] == "150.00"
        assert record["exc_max_allowed"] == "100.00"
        assert "traceback" in record

    def test_debug_filtered_at_info(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.debug("second")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first"]

    def test_configure_is_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        get_logger("test").info("once")

        assert len(_parse_all_logs(stream)) == 1


class TestLogContext:
    """Tests for context propagation."""

    def test_set_ignores_unknown_none(self):
        LogContext.set(tenant_id="t", actor_id=None)
        assert LogContext.get_all() == {"tenant_id": "t"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner", account_id="a-1"):
            assert LogContext.get_all() == {"operation": "inner", "account_id": "a-1"}
        assert LogContext.get_all() == {"operation": "outer"}

    def test_bind_skips_unknown_fields(self):
        with LogContext.bind(operation="op", amount="10"):
            assert LogContext.get_all() == {"operation": "op"}
