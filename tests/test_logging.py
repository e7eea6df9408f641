"""Tests for the structured logging system (baseline_ledger/logging_config.py)."""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from baseline_ledger.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests; restore suite config afterwards."""
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


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "baseline_ledger.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("version_renumbered", extra={"old_version": 5, "new_version": 3})

        record = _parse_log(stream)
        assert record["old_version"] == 5
        assert record["new_version"] == 3

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        milestone_id = uuid4()
        with LogContext.bind(milestone_id=milestone_id, job_id="repair-1"):
            get_logger("test").info("ctx")

        record = _parse_log(stream)
        assert record["milestone_id"] == str(milestone_id)
        assert record["job_id"] == "repair-1"

    def test_value_types_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed",
            extra={
                "row_id": uid,
                "created_at": datetime(2024, 1, 5, tzinfo=timezone.utc),
                "start": date(2024, 2, 1),
                "billable": Decimal("12.50"),
            },
        )

        record = _parse_log(stream)
        assert record["row_id"] == str(uid)
        assert record["created_at"] == "2024-01-05T00:00:00+00:00"
        assert record["start"] == "2024-02-01"
        assert record["billable"] == "12.50"

    def test_ledger_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from baseline_ledger.exceptions import VariationNotAppliedError

        try:
            raise VariationNotAppliedError("var-1", "approved")
        except VariationNotAppliedError:
            get_logger("test").error("amendment_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "VARIATION_NOT_APPLIED"
        assert record["exc_type"] == "VariationNotAppliedError"
        assert record["exc_variation_id"] == "var-1"
        assert record["exc_status"] == "approved"
        assert "traceback" in record

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_bind_and_get(self):
        with LogContext.bind(actor_id="y", milestone_id="m-1"):
            assert LogContext.get_all() == {"actor_id": "y", "milestone_id": "m-1"}
        assert LogContext.get_all() == {}

    def test_clear(self):
        with LogContext.bind(job_id="x"):
            LogContext.clear()
            assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer(self):
        with LogContext.bind(variation_id="outer"):
            with LogContext.bind(variation_id="inner"):
                assert LogContext.get_all()["variation_id"] == "inner"
            assert LogContext.get_all()["variation_id"] == "outer"

    def test_none_keeps_current_binding(self):
        with LogContext.bind(milestone_id="m-1"):
            with LogContext.bind(milestone_id=None, job_id="j"):
                assert LogContext.get_all() == {"milestone_id": "m-1", "job_id": "j"}

    def test_values_stored_as_strings(self):
        milestone_id = uuid4()
        with LogContext.bind(milestone_id=milestone_id):
            assert LogContext.get_all()["milestone_id"] == str(milestone_id)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError, match="correlation_id"):
            with LogContext.bind(correlation_id="x"):
                pass
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("baseline_ledger").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.ledger_writer").name == "baseline_ledger.services.ledger_writer"
