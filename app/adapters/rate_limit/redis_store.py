"""Redis-backed counter store shared by every API instance.

Atomicity comes from Redis itself: ``INCR`` is atomic across clients and the
window expiry is attached by whichever caller created the key. No
application-level locking is added on top.
"""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.adapters.rate_limit.base import AbstractCounterStore, CounterSnapshot
from app.core.errors import RateLimitStoreError
from app.core.logging import hash_identifier

logger = logging.getLogger(__name__)

# PTTL sentinels
_PTTL_NO_EXPIRY = -1
_PTTL_MISSING = -2


class RedisCounterStore(AbstractCounterStore):
    """Fixed-window counters stored as Redis integers with a PEXPIRE TTL."""

    backend = "redis"

    def __init__(self, client: Redis, *, owns_client: bool = False) -> None:
        """Initialize the store.

        Args:
            client: Connected ``redis.asyncio.Redis`` client.
            owns_client: Close the client when the store is closed.
        """
        self._client = client
        self._owns_client = owns_client

    async def increment(self, key: str, window_ms: int) -> CounterSnapshot:
        try:
            count = int(await self._client.incr(key))
            if count == 1:
                await self._client.pexpire(key, window_ms)
            ttl_ms = int(await self._client.pttl(key))
            if ttl_ms == _PTTL_NO_EXPIRY:
                # A previous caller died between INCR and PEXPIRE
                await self._client.pexpire(key, window_ms)
                ttl_ms = window_ms
            elif ttl_ms == _PTTL_MISSING:
                ttl_ms = window_ms
        except (RedisError, OSError) as exc:
            logger.error(
                "rate_limit.store_error",
                extra={
                    "backend": self.backend,
                    "key_hash": hash_identifier(key),
                    "error_type": type(exc).__name__,
                },
            )
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message="Rate limit store is unavailable",
                details={"backend": self.backend, "error_type": type(exc).__name__},
            ) from exc

        return CounterSnapshot(count=count, ttl_ms=ttl_ms)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
