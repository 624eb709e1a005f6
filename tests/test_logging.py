"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import MissingAccountError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's setup."""
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


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_all_logs(stream)[0]
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "ledger_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        entry_id = uuid4()
        get_logger("test").info(
            "posting_completed",
            extra={"entry_id": entry_id, "total_debit": Decimal("106000.00"), "line_count": 7},
        )

        record = _parse_all_logs(stream)[0]
        assert record["entry_id"] == str(entry_id)
        assert record["total_debit"] == "106000.00"
        assert record["line_count"] == 7

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        scope_id = uuid4()

        with LogContext.bind(scope_id=scope_id, source_type="payroll_run"):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = _parse_all_logs(stream)
        assert inside["scope_id"] == str(scope_id)
        assert inside["source_type"] == "payroll_run"
        assert "scope_id" not in outside

    def test_kernel_error_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        try:
            raise MissingAccountError("9999", "scope-1")
        except MissingAccountError:
            get_logger("test").warning("posting_rejected", exc_info=True)

        record = _parse_all_logs(stream)[0]
        assert record["exc_type"] == "MissingAccountError"
        assert record["exc_code"] == "MISSING_ACCOUNT"
        assert record["exc_account_code"] == "9999"
        assert "traceback" in record


class TestLogContext:
    def test_set_and_clear(self):
        LogContext.set(actor_id="user-1", entry_id=None)
        assert LogContext.get_all() == {"actor_id": "user-1"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="x")

    def test_bind_restores_previous(self):
        LogContext.set(source_id="outer")
        with LogContext.bind(source_id="inner"):
            assert LogContext.get_all()["source_id"] == "inner"
        assert LogContext.get_all()["source_id"] == "outer"


class TestConfigure:
    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("ledger_kernel").handlers) == 1

    def test_does_not_propagate(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("ledger_kernel").propagate is False

    def test_get_logger_is_child(self):
        assert get_logger("services.outbox").name == "ledger_kernel.services.outbox"
