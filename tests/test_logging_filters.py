"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from app.core.config import LogSettings
from app.core.logging import (
    JsonFormatter,
    SensitiveDataFilter,
    clear_request_id,
    configure_logging,
    hash_identifier,
    set_request_id,
)


@pytest.fixture
def capture() -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_credentials_and_client_ip_are_redacted(capture):
    logger, stream = capture

    logger.info(
        "auth_event",
        extra={
            "authorization": "Bearer abc.def",
            "client_ip": "1.2.3.4",
            "key_hash": "0123456789abcdef",
        },
    )

    output = stream.getvalue()
    assert "abc.def" not in output
    assert "1.2.3.4" not in output
    assert "[REDACTED]" in output
    assert "0123456789abcdef" in output


def test_nested_headers_are_redacted(capture):
    logger, stream = capture

    logger.info(
        "nested_event",
        extra={"headers": {"Cookie": "session=secret", "user-agent": "pytest"}},
    )

    output = stream.getvalue()
    assert "session=secret" not in output
    assert "pytest" in output


def test_safe_rate_limit_fields_pass_through(capture):
    logger, stream = capture

    logger.info(
        "rate_limit.exceeded",
        extra={"limit": 3, "count": 4, "retry_after_s": 60},
    )

    record = json.loads(stream.getvalue())
    assert record["message"] == "rate_limit.exceeded"
    assert record["limit"] == 3
    assert record["retry_after_s"] == 60
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_from_context_is_included(capture):
    logger, stream = capture
    set_request_id("req-123")
    try:
        logger.info("with_context")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-123"


def test_hash_identifier_is_stable_and_short():
    assert hash_identifier("temp:ratelimit:get:-x:1-2-3-4") == hash_identifier(
        "temp:ratelimit:get:-x:1-2-3-4"
    )
    assert len(hash_identifier("anything")) == 16


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_debug_flag_forces_debug_level(restore_root_logger):
    configure_logging(LogSettings(level="WARNING"), debug=True)

    assert restore_root_logger.level == logging.DEBUG


def test_configured_level_applies_without_debug(restore_root_logger):
    configure_logging(LogSettings(level="WARNING"))

    assert restore_root_logger.level == logging.WARNING
