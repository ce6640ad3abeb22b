"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    hint: str
    backend: str
    error_type: str


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class RateLimitStoreError(AppError):
    """Raised when the rate limit counter store cannot be reached or fails."""


@dataclass
class RateLimitExceeded(Exception):
    """Control-flow signal that terminates a request with a rejection payload.

    Not an AppError: the payload shape is fixed by the rate limit contract and
    is rendered verbatim instead of the generic error envelope.

    Attributes:
        status_code: HTTP status to respond with (429).
        body: JSON body to return.
        headers: Headers accumulated before the rejection.
    """

    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.body.get("error", "rejected"))
