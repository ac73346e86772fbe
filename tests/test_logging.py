"""
Tests for structured logging (budget_kernel/logging_config.py).

Validates:
- one JSON object per line with ts/level/logger/message
- LogContext fields and ``extra=`` payloads merged into each record
- ledger exceptions contribute exc_code and their data attributes
- configure_logging is idempotent and scoped to the budget_kernel namespace
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from budget_kernel.exceptions import PersistenceError, VersionNotFoundError
from budget_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def records():
    """Configure logging into a buffer; calling the fixture returns parsed lines."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level=logging.DEBUG)

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


# =============================================================================
# Record layout
# =============================================================================


class TestRecordLayout:
    """What a single line contains."""

    def test_base_fields(self, records):
        get_logger("modules.ledger.service").info("version_mutated")

        [record] = records()
        assert record["message"] == "version_mutated"
        assert record["level"] == "INFO"
        assert record["logger"] == "budget_kernel.modules.ledger.service"
        assert record["ts"].endswith("+00:00")

    def test_extra_payload(self, records):
        version_id = uuid4()
        get_logger("t").info(
            "line_items_updated",
            extra={"version": version_id, "total": Decimal("1250.50"), "count": 3},
        )

        [record] = records()
        assert record["version"] == str(version_id)
        assert record["total"] == "1250.50"
        assert record["count"] == 3

    def test_context_fields(self, records):
        with LogContext.bind(version_id="v-1", operation="lock_version", actor="alice"):
            get_logger("t").info("version_locked")
        get_logger("t").info("after")

        inside, outside = records()
        assert (inside["version_id"], inside["operation"], inside["actor"]) == (
            "v-1", "lock_version", "alice",
        )
        assert "version_id" not in outside

    def test_extra_does_not_override_context(self, records):
        with LogContext.bind(operation="rename_version"):
            get_logger("t").info("event", extra={"operation": "other"})
        assert records()[0]["operation"] == "rename_version"

    def test_debug_visible_at_debug_level(self, records):
        get_logger("t").debug("transaction_started")
        assert records()[0]["level"] == "DEBUG"


class TestExceptionFields:
    """exc_info handling."""

    def test_plain_exception(self, records):
        try:
            raise ValueError("bad quantity")
        except ValueError:
            get_logger("t").error("failed", exc_info=True)

        [record] = records()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "bad quantity"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_ledger_exception_data(self, records):
        try:
            raise PersistenceError("lock_version", "disk full")
        except PersistenceError:
            get_logger("t").error("persistence_failed", exc_info=True)

        [record] = records()
        assert record["exc_code"] == "PERSISTENCE_ERROR"
        assert record["exc_operation"] == "lock_version"
        assert record["exc_reason"] == "disk full"

    def test_not_found_exception(self, records):
        version_id = str(uuid4())
        try:
            raise VersionNotFoundError(version_id)
        except VersionNotFoundError:
            get_logger("t").warning("lookup_failed", exc_info=True)
        assert records()[0]["exc_version_id"] == version_id


# =============================================================================
# LogContext
# =============================================================================


class TestLogContext:
    """Context-variable backed fields."""

    def test_set_skips_none(self):
        LogContext.set(actor="alice", version_id=None)
        assert LogContext.get_all() == {"actor": "alice"}

    def test_set_rejects_unknown(self):
        with pytest.raises(TypeError):
            LogContext.set(project="x")

    def test_bind_nests_and_restores(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner", version_id="v"):
            assert LogContext.get_all() == {"operation": "inner", "version_id": "v"}
        assert LogContext.get_all() == {"operation": "outer"}

    def test_bind_ignores_unknown_and_none(self):
        with LogContext.bind(not_a_field="x", actor="bob", correlation_id=None):
            assert LogContext.get_all() == {"actor": "bob"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor="carol"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}

    def test_clear(self):
        LogContext.set(correlation_id="c", version_id="v", actor="a", operation="o")
        assert len(LogContext.get_all()) == 4
        LogContext.clear()
        assert LogContext.get_all() == {}


# =============================================================================
# configure_logging
# =============================================================================


class TestConfigureLogging:
    """Initialization of the budget_kernel namespace."""

    def test_second_call_is_ignored(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("budget_kernel").handlers) == 1

    def test_default_level_drops_debug(self):
        stream = StringIO()
        configure_logging(stream=stream)
        get_logger("t").debug("hidden")
        get_logger("t").info("shown")
        assert [json.loads(line)["message"] for line in stream.getvalue().splitlines()] == ["shown"]

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert logging.getLogger("budget_kernel").propagate is False

    def test_reset_restores_warning_level(self):
        configure_logging(level=logging.DEBUG, handler=logging.StreamHandler(StringIO()))
        reset_logging()
        namespace = logging.getLogger("budget_kernel")
        assert namespace.handlers == []
        assert namespace.level == logging.WARNING

    def test_formatter_installed_on_handler(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        assert isinstance(handler.formatter, StructuredFormatter)
