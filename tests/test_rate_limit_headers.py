"""Unit tests for the response annotator."""

from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import Response

from app.core.errors import RateLimitExceeded
from app.core.rate_limit_headers import (
    FastAPIResponseSink,
    annotate_response,
    format_reset,
)
from app.services.rate_limiter import RateLimitDecision

RESET_AT = datetime(2026, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)


class RecordingSink:
    def __init__(self) -> None:
        self.headers: dict[str, str] = {}
        self.rejection: tuple[int, dict[str, Any]] | None = None

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def reject(self, status_code: int, body: dict[str, Any]) -> None:
        self.rejection = (status_code, body)


def _decision(**overrides: Any) -> RateLimitDecision:
    values: dict[str, Any] = {
        "allowed": True,
        "limit": 3,
        "remaining": 2,
        "reset_at": RESET_AT,
        "retry_after_seconds": None,
        "key": "temp:ratelimit:get:-x:1-2-3-4",
    }
    values.update(overrides)
    return RateLimitDecision(**values)


def test_allowed_sets_headers_without_rejecting() -> None:
    sink = RecordingSink()

    annotate_response(_decision(), sink)

    assert sink.headers == {
        "X-RateLimit-Limit": "3",
        "X-RateLimit-Remaining": "2",
        "X-RateLimit-Reset": "2026-01-02T03:04:05.678Z",
    }
    assert sink.rejection is None


def test_denied_sets_retry_after_and_rejects() -> None:
    sink = RecordingSink()

    annotate_response(_decision(allowed=False, remaining=0, retry_after_seconds=42), sink)

    assert sink.headers["Retry-After"] == "42"
    assert sink.headers["X-RateLimit-Remaining"] == "0"
    assert sink.rejection == (
        429,
        {"success": False, "error": "Too Many Requests", "retryAfter": 42},
    )


def test_remaining_header_never_negative() -> None:
    sink = RecordingSink()

    annotate_response(_decision(remaining=-4), sink)

    assert sink.headers["X-RateLimit-Remaining"] == "0"


def test_skipped_decision_leaves_response_untouched() -> None:
    sink = RecordingSink()

    annotate_response(_decision(skipped=True), sink)

    assert sink.headers == {}
    assert sink.rejection is None


def test_reset_is_iso8601() -> None:
    parsed = datetime.fromisoformat(format_reset(_decision()).replace("Z", "+00:00"))

    assert parsed == RESET_AT


def test_fastapi_sink_raises_with_accumulated_headers() -> None:
    response = Response()
    sink = FastAPIResponseSink(response)

    with pytest.raises(RateLimitExceeded) as exc_info:
        annotate_response(_decision(allowed=False, remaining=0, retry_after_seconds=7), sink)

    exc = exc_info.value
    assert exc.status_code == 429
    assert exc.body["retryAfter"] == 7
    assert exc.headers["Retry-After"] == "7"
    assert exc.headers["X-RateLimit-Limit"] == "3"
    assert response.headers["X-RateLimit-Limit"] == "3"
