"""Response annotation for limiter decisions.

``annotate_response`` only talks to a small ``ResponseSink`` protocol, so the
header and rejection rules stay independent of the web framework.
"""

from __future__ import annotations

from datetime import timezone
from typing import Any, Protocol

from fastapi import Response, status

from app.core.errors import RateLimitExceeded
from app.services.rate_limiter import RateLimitDecision

HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"


class ResponseSink(Protocol):
    """Outgoing response capability used by the annotator."""

    def set_header(self, name: str, value: str) -> None: ...

    def reject(self, status_code: int, body: dict[str, Any]) -> None: ...


def format_reset(decision: RateLimitDecision) -> str:
    """ISO-8601 UTC timestamp for the X-RateLimit-Reset header."""

    reset_at = decision.reset_at.astimezone(timezone.utc)
    return reset_at.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rejection_body(retry_after: int) -> dict[str, Any]:
    return {"success": False, "error": "Too Many Requests", "retryAfter": retry_after}


def annotate_response(decision: RateLimitDecision, sink: ResponseSink) -> None:
    """Write rate limit headers and reject the request when denied.

    Skipped decisions carry no real counter state and leave the response
    untouched.

    Args:
        decision: Limiter outcome for the current request.
        sink: Response capability to write to.
    """

    if decision.skipped:
        return

    sink.set_header(HEADER_LIMIT, str(decision.limit))
    sink.set_header(HEADER_REMAINING, str(max(0, decision.remaining)))
    sink.set_header(HEADER_RESET, format_reset(decision))

    if decision.allowed:
        return

    retry_after = max(1, decision.retry_after_seconds or 1)
    sink.set_header(HEADER_RETRY_AFTER, str(retry_after))
    sink.reject(status.HTTP_429_TOO_MANY_REQUESTS, rejection_body(retry_after))


class FastAPIResponseSink:
    """ResponseSink over a FastAPI dependency ``Response``.

    Headers go onto the response that the route will return. Rejection raises
    ``RateLimitExceeded`` carrying the same headers, since headers set on the
    dependency response are discarded once an exception is raised.
    """

    def __init__(self, response: Response) -> None:
        self._response = response
        self.headers: dict[str, str] = {}

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value
        self._response.headers[name] = value

    def reject(self, status_code: int, body: dict[str, Any]) -> None:
        raise RateLimitExceeded(status_code=status_code, body=body, headers=dict(self.headers))
