"""Factory pattern for creating counter store instances."""

from __future__ import annotations

import logging

from redis.asyncio import Redis

from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.in_memory import InMemoryCounterStore
from app.adapters.rate_limit.redis_store import RedisCounterStore
from app.core.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def create_counter_store(
    cfg: Settings | None = None,
    *,
    redis_client: Redis | None = None,
) -> AbstractCounterStore:
    """Pick the counter store backend from configuration.

    An injected client always wins (tests, shared connection pools). Otherwise
    a client is built from ``REDIS_URL`` when Redis is enabled; with no URL the
    in-process store is used.

    Args:
        cfg: Settings to read; defaults to the global settings.
        redis_client: Optional pre-built ``redis.asyncio`` client.

    Returns:
        AbstractCounterStore: Configured store instance.
    """
    cfg = cfg or default_settings

    if redis_client is not None:
        return RedisCounterStore(redis_client)

    if cfg.redis.enabled and cfg.redis.url:
        client = Redis.from_url(
            cfg.redis.url,
            socket_timeout=cfg.redis.socket_timeout_seconds,
            socket_connect_timeout=cfg.redis.socket_timeout_seconds,
        )
        logger.info("rate_limit.store_selected", extra={"backend": RedisCounterStore.backend})
        return RedisCounterStore(client, owns_client=True)

    logger.info(
        "rate_limit.store_selected",
        extra={
            "backend": InMemoryCounterStore.backend,
            "reason": "redis_disabled" if not cfg.redis.enabled else "redis_url_missing",
        },
    )
    return InMemoryCounterStore()
