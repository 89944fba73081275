"""Tests for the structured logging system (shipment_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from shipment_kernel.domain.values import ShipmentStatus
from shipment_kernel.exceptions import InvalidTransitionError, ValidationFailedError
from shipment_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Start each test unconfigured; put the suite-wide setup back afterwards."""
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
    return _parse_all_logs(stream)[0]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_envelope(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "shipment_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("moved", extra={"version": 3, "to_status": "booked"})

        record = _parse_log(stream)
        assert record["version"] == 3
        assert record["to_status"] == "booked"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", shipment_id="shp-1")
        get_logger("test").info("msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["shipment_id"] == "shp-1"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "shipment_id" not in record

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InvalidTransitionError("invoiced", "booked")
        except InvalidTransitionError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "InvalidTransitionError"
        assert record["exc_code"] == "INVALID_TRANSITION"
        assert record["exc_from_status"] == "invoiced"
        assert record["exc_to_status"] == "booked"
        assert "traceback" in record

    def test_missing_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValidationFailedError(("hawb", "mawb"), service_type="NFO", to_status="pickup")
        except ValidationFailedError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "VALIDATION_FAILED"
        assert record["exc_missing_fields"] == ["hawb", "mawb"]

    def test_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "typed", extra={"shipment_uuid": uid, "status": ShipmentStatus.CUSTOMS},
        )

        record = _parse_log(stream)
        assert record["shipment_uuid"] == str(uid)
        assert record["status"] == "customs"

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]

    def test_configure_is_idempotent(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        get_logger("test").info("once")
        assert len(_parse_all_logs(stream)) == 1


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", task_id="t")
        assert LogContext.get_all() == {"correlation_id": "x", "task_id": "t"}

    def test_clear(self):
        LogContext.set(actor_id="a")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", shipment_id="s"):
            assert LogContext.get_all() == {"correlation_id": "inner", "shipment_id": "s"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_rejects_unknown_fields(self):
        with pytest.raises(ValueError):
            LogContext.bind(event_id="e")

    def test_set_rejects_unknown_fields(self):
        with pytest.raises(ValueError):
            LogContext.set(event_id="e")
        assert LogContext.get_all() == {}

    def test_values_stored_as_text(self):
        uid = uuid4()
        LogContext.set(shipment_id=uid)
        assert LogContext.get_all() == {"shipment_id": str(uid)}
