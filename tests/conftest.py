"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment before settings are imported so no .env file or
Redis URL leaks into the test run.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ["APP_ENV"] = "testing"
os.environ.pop("REDIS_URL", None)
os.environ.setdefault("RATE_LIMIT_FORCE_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.core.config import Settings, settings


class FakeClock:
    """Deterministic millisecond clock for stores and limiters."""

    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.current = start_ms

    def __call__(self) -> float:
        return self.current

    def advance(self, ms: float) -> None:
        self.current += ms


class FakeAsyncRedis:
    """Minimal async stand-in for ``redis.asyncio.Redis`` counters."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.values: dict[str, int] = {}
        self.expires_at: dict[str, float] = {}
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def _purge(self, key: str) -> None:
        expires_at = self.expires_at.get(key)
        if expires_at is not None and self._clock() >= expires_at:
            self.values.pop(key, None)
            self.expires_at.pop(key, None)

    async def incr(self, key: str) -> int:
        self.calls.append(("incr", key))
        self._purge(key)
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def pexpire(self, key: str, ms: int) -> bool:
        self.calls.append(("pexpire", key))
        self.expires_at[key] = self._clock() + ms
        return True

    async def pttl(self, key: str) -> int:
        self.calls.append(("pttl", key))
        self._purge(key)
        if key not in self.values:
            return -2
        if key not in self.expires_at:
            return -1
        return int(self.expires_at[key] - self._clock())

    async def aclose(self) -> None:
        self.closed = True


class FailingRedis:
    """Redis double whose every command fails like a dropped connection."""

    async def incr(self, key: str) -> int:
        raise RedisConnectionError("connection refused")

    async def pexpire(self, key: str, ms: int) -> bool:
        raise RedisConnectionError("connection refused")

    async def pttl(self, key: str) -> int:
        raise RedisConnectionError("connection refused")

    async def aclose(self) -> None:
        return None


def make_settings(
    *,
    app_env: str = "production",
    **rate_limit: Any,
) -> Settings:
    """Copy the global settings with an environment and rate limit overrides."""

    return settings.model_copy(
        update={
            "app_env": app_env,
            "rate_limit": settings.rate_limit.model_copy(update=rate_limit),
        }
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock: FakeClock) -> FakeAsyncRedis:
    return FakeAsyncRedis(clock)
