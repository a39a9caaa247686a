"""
Tests for structured JSON logging and correlation ID propagation.
"""
import json
import logging

import pytest

from easyserve.lib.logging import (
    JSONFormatter,
    get_correlation_id,
    get_logger,
    log_with_context,
    set_correlation_id,
)


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.fixture
def captured():
    logger = get_logger("easyserve.test")
    handler = _ListHandler()
    logger.addHandler(handler)
    yield logger, handler
    logger.removeHandler(handler)
    set_correlation_id(None)


@pytest.mark.unit
def test_correlation_id_roundtrip():
    set_correlation_id("req-42")
    assert get_correlation_id() == "req-42"

    set_correlation_id(None)
    assert get_correlation_id() is None


@pytest.mark.unit
def test_formatter_includes_correlation_and_context(captured):
    logger, handler = captured
    set_correlation_id("req-42")

    log_with_context(logger, "warning", "Settlement rolled back", booking_id="b-1", amount=250.0)

    record = handler.records[-1]
    assert record.levelname == "WARNING"
    data = json.loads(JSONFormatter().format(record))
    assert data["message"] == "Settlement rolled back"
    assert data["logger"] == "easyserve.test"
    assert data["correlation_id"] == "req-42"
    assert data["booking_id"] == "b-1"
    assert data["amount"] == 250.0
    assert data["source"].startswith("test_logging:")


@pytest.mark.unit
def test_formatter_omits_missing_correlation_id(captured):
    logger, handler = captured

    logger.info("Bid placed")

    data = json.loads(JSONFormatter().format(handler.records[-1]))
    assert "correlation_id" not in data
    assert "source" not in data
    assert data["level"] == "INFO"
