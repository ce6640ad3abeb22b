"""Fixed-window rate limiter.

All requests for one bucket inside a window share a single counter that
resets when the window expires. A burst straddling a window boundary can see
up to ``2 × max`` requests pass; this is the accepted price for O(1) memory
and O(1) work per request.
"""

from __future__ import annotations

import logging
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

from app.adapters.rate_limit.base import AbstractCounterStore, CounterSnapshot
from app.core.errors import RateLimitStoreError, ValidationAppError
from app.core.logging import hash_identifier
from app.utils.rate_limit_keys import RequestIdentity, key_for_identity

logger = logging.getLogger(__name__)

DEFAULT_MAX = 100
DEFAULT_TIME_WINDOW_MS = 60_000

_UNIT_MS = {
    "second": 1_000,
    "minute": 60_000,
    "hour": 3_600_000,
    "day": 86_400_000,
}

_TIME_WINDOW_PATTERN = re.compile(
    r"^\s*(\d+)\s*(second|minute|hour|day)s?\s*$",
    re.IGNORECASE,
)


def parse_time_window(value: int | str | None) -> int:
    """Convert a window declaration to milliseconds.

    Integers (and digit-only strings) are milliseconds. Other strings must
    read ``<number> <unit>`` with unit second, minute, hour or day, singular
    or plural. Anything else falls back to 60 seconds with a warning.

    Examples:
        >>> parse_time_window("15 minutes")
        900000
        >>> parse_time_window(1500)
        1500
        >>> parse_time_window("soon")
        60000
    """

    if value is None:
        return DEFAULT_TIME_WINDOW_MS

    if isinstance(value, bool):
        window_ms = 0
    elif isinstance(value, int):
        window_ms = value
    elif isinstance(value, str) and value.strip().isdigit():
        window_ms = int(value.strip())
    else:
        match = _TIME_WINDOW_PATTERN.match(str(value))
        window_ms = int(match.group(1)) * _UNIT_MS[match.group(2).lower()] if match else 0

    if window_ms <= 0:
        logger.warning(
            "rate_limit.invalid_time_window",
            extra={"time_window": str(value), "fallback_ms": DEFAULT_TIME_WINDOW_MS},
        )
        return DEFAULT_TIME_WINDOW_MS

    return window_ms


@dataclass
class RateLimitOptions:
    """Per-route limiter configuration.

    Attributes:
        max: Maximum requests allowed per window.
        time_window: Window length in ms or as ``"<number> <unit>"``.
        skip_on_error: Allow requests through when the store fails.
        window_ms: Resolved window length in milliseconds.
    """

    max: int = DEFAULT_MAX
    time_window: int | str = DEFAULT_TIME_WINDOW_MS
    skip_on_error: bool = True
    window_ms: int = field(init=False)

    def __post_init__(self) -> None:
        if isinstance(self.max, bool) or not isinstance(self.max, int) or self.max < 1:
            raise ValidationAppError(
                code="rate_limit_invalid_max",
                message="Rate limit max must be a positive integer",
                details={"hint": f"got {self.max!r}"},
            )
        self.window_ms = parse_time_window(self.time_window)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a limiter check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Configured maximum per window.
        remaining: Requests left in the window, never negative.
        reset_at: When the current window ends (UTC).
        retry_after_seconds: Seconds to wait; set only when denied.
        key: Bucket key the request was counted under.
        skipped: True when no counting happened (bypass or store failure).
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after_seconds: int | None
    key: str
    skipped: bool = False


def _now_ms() -> float:
    return time.time() * 1000


class RateLimiter:
    """Decides allow/deny for a request against a counter store.

    The store is injected so tests and deployments choose the backend
    explicitly; there is no module-level client.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Counter store backend.
            clock: Time source returning UNIX time in milliseconds.
        """
        self.store = store
        self._clock = clock

    def _timestamp(self, offset_ms: float = 0) -> datetime:
        return datetime.fromtimestamp((self._clock() + offset_ms) / 1000, tz=timezone.utc)

    def skipped(self, identity: RequestIdentity, options: RateLimitOptions) -> RateLimitDecision:
        """Build an allowed decision for a request that was not counted."""

        return RateLimitDecision(
            allowed=True,
            limit=options.max,
            remaining=options.max,
            reset_at=self._timestamp(options.window_ms),
            retry_after_seconds=None,
            key=key_for_identity(identity),
            skipped=True,
        )

    async def _increment_or_skip(
        self, key: str, options: RateLimitOptions
    ) -> CounterSnapshot | None:
        """Increment the bucket; None means "treat as allowed"."""

        try:
            return await self.store.increment(key, options.window_ms)
        except RateLimitStoreError as exc:
            if not options.skip_on_error:
                raise
            logger.warning(
                "rate_limit.store_error_skipped",
                extra={
                    "backend": self.store.backend,
                    "key_hash": hash_identifier(key),
                    "error_code": exc.code,
                },
            )
            return None

    async def check(self, identity: RequestIdentity, options: RateLimitOptions) -> RateLimitDecision:
        """Count the request and decide whether it may proceed.

        Args:
            identity: Method, route and client IP of the request.
            options: Route limiter configuration.

        Returns:
            RateLimitDecision for the request.

        Raises:
            RateLimitStoreError: If the store fails and skip_on_error is False.
        """

        key = key_for_identity(identity)
        snapshot = await self._increment_or_skip(key, options)
        if snapshot is None:
            return self.skipped(identity, options)

        remaining = max(0, options.max - snapshot.count)
        reset_at = self._timestamp(snapshot.ttl_ms)

        if snapshot.count > options.max:
            retry_after = max(1, math.ceil(snapshot.ttl_ms / 1000))
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "key_hash": hash_identifier(key),
                    "limit": options.max,
                    "count": snapshot.count,
                    "window_ms": options.window_ms,
                    "retry_after_s": retry_after,
                },
            )
            return RateLimitDecision(
                allowed=False,
                limit=options.max,
                remaining=remaining,
                reset_at=reset_at,
                retry_after_seconds=retry_after,
                key=key,
            )

        logger.debug(
            "rate_limit.allowed",
            extra={
                "key_hash": hash_identifier(key),
                "limit": options.max,
                "remaining": remaining,
                "window_ms": options.window_ms,
            },
        )
        return RateLimitDecision(
            allowed=True,
            limit=options.max,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=None,
            key=key,
        )
