"""Rate limiting dependency for FastAPI routes.

This module wires the limiter into the HTTP layer.

Usage:
    @router.post("/login", dependencies=[Depends(RateLimit(max=5, time_window="15 minutes"))])

Routes without a ``RateLimit`` dependency are not rate limited. The limiter
itself lives on ``app.state.rate_limiter`` and is created by the app factory,
so tests can swap its store without touching module globals.

Bypass rules:
- ``RATE_LIMIT_ENABLED=false`` disables limiting everywhere.
- In development/testing, checks are skipped unless ``RATE_LIMIT_FORCE_ENABLED``
  is set or the request carries the force header with value ``true``.
- Clients on ``RATE_LIMIT_ALLOW_LIST`` are never limited.
"""

import logging
from functools import lru_cache

from fastapi import Request, Response

from app.core.config import RateLimitSettings, Settings, settings as default_settings
from app.core.rate_limit_headers import FastAPIResponseSink, annotate_response
from app.services.rate_limiter import RateLimitDecision, RateLimiter, RateLimitOptions
from app.utils.rate_limit_keys import RequestIdentity, identity_from_request

logger = logging.getLogger(__name__)


# Named budgets used across the marketplace API
RATE_LIMIT_PRESETS: dict[str, dict[str, int | str]] = {
    "auth_login": {"max": 5, "time_window": "15 minutes"},
    "auth_register": {"max": 3, "time_window": "1 hour"},
    "auth_password_reset": {"max": 3, "time_window": "1 hour"},
    "translation_read": {"max": 1000, "time_window": "1 hour"},
    "translation_write": {"max": 100, "time_window": "1 hour"},
    "config_read": {"max": 100, "time_window": "1 hour"},
    "config_write": {"max": 10, "time_window": "1 hour"},
    "public_ping": {"max": 30, "time_window": "1 minute"},
}


@lru_cache(maxsize=32)
def parse_allow_list(value: str | None) -> frozenset[str]:
    """Parse a comma-separated IP list into a set of trimmed entries.

    Cached on the raw string, so each configured list is parsed once.

    Examples:
        >>> sorted(parse_allow_list("10.0.0.1, 127.0.0.1"))
        ['10.0.0.1', '127.0.0.1']
        >>> parse_allow_list(None)
        frozenset()
    """
    if not value:
        return frozenset()
    return frozenset(ip.strip() for ip in value.split(",") if ip.strip())


def is_forced(request: Request, cfg: Settings) -> bool:
    """Whether the request explicitly opts in to enforcement."""

    return request.headers.get(cfg.rate_limit.force_header, "").strip().lower() == "true"


def should_bypass(request: Request, identity: RequestIdentity, cfg: Settings) -> str | None:
    """Return the bypass reason for this request, or None to enforce limits."""

    if not cfg.rate_limit.enabled:
        return "disabled"
    if identity.ip in parse_allow_list(cfg.rate_limit.allow_list):
        return "allow_list"
    if cfg.bypass_rate_limits and not is_forced(request, cfg):
        return "environment"
    return None


def get_rate_limiter(request: Request) -> RateLimiter:
    """Return the limiter attached to the application by the factory."""

    return request.app.state.rate_limiter


def get_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or default_settings


class RateLimit:
    """Per-route rate limit declaration, used as a FastAPI dependency.

    Arguments left as None are filled from the ``RateLimitSettings`` of the
    app serving the request, so ``create_app(cfg)`` controls route defaults.

    Args:
        max: Requests allowed per window (defaults to RATE_LIMIT_DEFAULT_MAX).
        time_window: Window in ms or ``"<number> <unit>"`` (defaults to
            RATE_LIMIT_DEFAULT_TIME_WINDOW).
        skip_on_error: Allow requests when the store fails (defaults to
            RATE_LIMIT_SKIP_ON_ERROR).

    Raises:
        ValidationAppError: If ``max`` is not a positive integer.
    """

    def __init__(
        self,
        max: int | None = None,
        time_window: int | str | None = None,
        skip_on_error: bool | None = None,
    ) -> None:
        self.max = max
        self.time_window = time_window
        self.skip_on_error = skip_on_error
        self._options: dict[int, tuple[RateLimitSettings, RateLimitOptions]] = {}

        # Fail at route declaration time on a bad explicit max
        if max is not None:
            self.options_for(default_settings.rate_limit)

    @classmethod
    def preset(cls, name: str, *, skip_on_error: bool | None = None) -> "RateLimit":
        """Build a dependency from a named entry of RATE_LIMIT_PRESETS."""

        config = RATE_LIMIT_PRESETS[name]
        return cls(
            max=int(config["max"]),
            time_window=config["time_window"],
            skip_on_error=skip_on_error,
        )

    def options_for(self, rl: RateLimitSettings) -> RateLimitOptions:
        """Resolve the effective options against one settings object (cached)."""

        cached = self._options.get(id(rl))
        if cached is not None and cached[0] is rl:
            return cached[1]

        options = RateLimitOptions(
            max=self.max if self.max is not None else rl.default_max,
            time_window=self.time_window if self.time_window is not None else rl.default_time_window,
            skip_on_error=rl.skip_on_error if self.skip_on_error is None else self.skip_on_error,
        )
        self._options[id(rl)] = (rl, options)
        return options

    async def __call__(self, request: Request, response: Response) -> RateLimitDecision:
        cfg = get_settings(request)
        options = self.options_for(cfg.rate_limit)
        limiter = get_rate_limiter(request)
        identity = identity_from_request(
            request, trust_forwarded_for=cfg.rate_limit.trust_forwarded_for
        )

        reason = should_bypass(request, identity, cfg)
        if reason is not None:
            logger.debug("rate_limit.bypassed", extra={"reason": reason})
            return limiter.skipped(identity, options)

        decision = await limiter.check(identity, options)
        annotate_response(decision, FastAPIResponseSink(response))
        return decision
