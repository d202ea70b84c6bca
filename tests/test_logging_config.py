"""Tests for logging configuration and formatters."""

import io
import json
import logging
import sys

import pytest

from bulk_messenger.logging import ComponentLoggerAdapter, get_logger
from bulk_messenger.logging.config import (
    ContextualFilter,
    JSONFormatter,
    KeyValueFormatter,
    configure_logging,
    mask_value,
)
from bulk_messenger.logging.context import clear_log_context, log_context


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def logger():
    test_logger = logging.getLogger("test_logger")
    test_logger.setLevel(logging.DEBUG)
    test_logger.handlers.clear()

    yield test_logger

    test_logger.handlers.clear()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level

    yield root

    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(logger, message="Test message", extra=None):
    return logger.makeRecord("test", logging.INFO, "test.py", 1, message, (), None, extra=extra)


def test_json_formatter_basic(logger):
    log_obj = json.loads(JSONFormatter().format(make_record(logger)))

    assert log_obj["level"] == "INFO"
    assert log_obj["message"] == "Test message"
    assert log_obj["logger"] == "test"
    assert log_obj["timestamp"].endswith("Z")


def test_json_formatter_with_extra_fields(logger):
    record = make_record(
        logger, extra={"event": "job.item.sent", "attempts": 2, "notification_recorded": True}
    )

    log_obj = json.loads(JSONFormatter().format(record))

    assert log_obj["event"] == "job.item.sent"
    assert log_obj["attempts"] == 2
    assert log_obj["notification_recorded"] is True


def test_json_formatter_keeps_non_ascii(logger):
    output = JSONFormatter().format(make_record(logger, message="Olá, cobrança"))

    assert "Olá, cobrança" in output


def test_json_formatter_includes_exception(logger):
    try:
        raise ValueError("bad payload")
    except ValueError:
        record = logger.makeRecord(
            "test", logging.ERROR, "test.py", 1, "Failed", (), sys.exc_info()
        )

    log_obj = json.loads(JSONFormatter().format(record))

    assert "ValueError: bad payload" in log_obj["exc_info"]


def test_contextual_filter_adds_static_and_context_fields(logger):
    context_filter = ContextualFilter(service="bulk-messenger", environment="test")

    with log_context(job_id="4f1c", owner_id="seller-1"):
        record = make_record(logger)
        context_filter.filter(record)

    assert record.service == "bulk-messenger"
    assert record.environment == "test"
    assert record.job_id == "4f1c"
    assert record.owner_id == "seller-1"


def test_explicit_extra_wins_over_context(logger):
    with log_context(job_id="from-context"):
        record = make_record(logger, extra={"job_id": "explicit"})
        ContextualFilter().filter(record)

    assert record.job_id == "explicit"


def test_contextual_filter_masks_sensitive_fields(logger):
    record = make_record(logger, extra={"number": "5511987654321", "api_key": "secret-key"})

    ContextualFilter().filter(record)

    assert record.number == "*********4321"
    assert record.api_key == "***"


@pytest.mark.parametrize(
    "key, value, expected",
    [
        ("phone", "5511987654321", "*********4321"),
        ("phone", "123", "123"),
        ("apikey", "abc", "***"),
        ("phone", None, None),
        ("customer_id", "cust-1", "cust-1"),
    ],
)
def test_mask_value(key, value, expected):
    assert mask_value(key, value) == expected


def test_key_value_formatter(logger):
    formatter = KeyValueFormatter("%(levelname)s %(message)s")
    record = make_record(
        logger,
        message="Item failed",
        extra={
            "event": "job.item.failed",
            "error": "HTTP 400: bad request",
            "retryable": False,
            "last_error": None,
            "service": "bulk-messenger",
        },
    )

    output = formatter.format(record)

    assert output.startswith("INFO Item failed ")
    assert "event=job.item.failed" in output
    assert 'error="HTTP 400: bad request"' in output
    assert "retryable=false" in output
    assert "last_error=null" in output
    assert "service=" not in output


def test_component_adapter_merges_extras(logger):
    adapter = get_logger("test_logger", component="runner")
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)

    adapter.info("Job started", extra={"event": "job.run.started"})

    log_obj = json.loads(stream.getvalue())
    assert isinstance(adapter, ComponentLoggerAdapter)
    assert log_obj["component"] == "runner"
    assert log_obj["event"] == "job.run.started"


def test_get_logger_without_component():
    assert isinstance(get_logger("plain"), logging.Logger)


def test_configure_logging_json(restore_root_logger):
    stream = io.StringIO()

    configure_logging(level="DEBUG", format_type="json", environment="test", stream=stream)

    assert restore_root_logger.level == logging.DEBUG
    assert len(restore_root_logger.handlers) == 1
    first_line = json.loads(stream.getvalue().splitlines()[0])
    assert first_line["event"] == "logging.configured"
    assert first_line["environment"] == "test"
    assert first_line["service"] == "bulk-messenger"


def test_configure_logging_quiets_urllib3(restore_root_logger):
    configure_logging(level="DEBUG", stream=io.StringIO())

    assert logging.getLogger("urllib3").level == logging.INFO


@pytest.mark.parametrize("level, format_type", [("LOUD", "json"), ("INFO", "xml")])
def test_configure_logging_rejects_invalid(restore_root_logger, level, format_type):
    with pytest.raises(ValueError):
        configure_logging(level=level, format_type=format_type)
