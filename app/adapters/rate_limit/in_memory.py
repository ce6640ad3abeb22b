"""In-process counter store used when Redis is unavailable.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, so sync dependencies running
  in the threadpool and the event loop can share one instance.
- Expired entries are replaced lazily on access and evicted by ``sweep()``.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractCounterStore, CounterSnapshot


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitEntry:
    """Counter for one bucket within one window.

    Attributes:
        key: Bucket key (``temp:ratelimit:{method}:{route}:{ip}``).
        count: Requests observed in the current window.
        reset_at: Absolute epoch milliseconds when the window expires.
    """

    key: str
    count: int
    reset_at: float

    def is_expired(self, now_ms: float) -> bool:
        return now_ms >= self.reset_at


class InMemoryCounterStore(AbstractCounterStore):
    """Fixed-window counters kept in a dict keyed by bucket."""

    backend = "memory"

    def __init__(self, *, clock: Callable[[], float] = _now_ms) -> None:
        """Initialize the store.

        Args:
            clock: Time source returning UNIX time in milliseconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, RateLimitEntry] = {}

    def increment_sync(self, key: str, window_ms: int) -> CounterSnapshot:
        """Synchronous increment, shared by ``increment`` and tests."""

        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                entry = RateLimitEntry(key=key, count=1, reset_at=now + window_ms)
                self._entries[key] = entry
            else:
                entry.count += 1
            ttl_ms = max(0, int(entry.reset_at - now))
            return CounterSnapshot(count=entry.count, ttl_ms=ttl_ms)

    async def increment(self, key: str, window_ms: int) -> CounterSnapshot:
        return self.increment_sync(key, window_ms)

    def get(self, key: str) -> RateLimitEntry | None:
        """Return the live entry for ``key``, or None if absent or expired."""

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return RateLimitEntry(key=entry.key, count=entry.count, reset_at=entry.reset_at)

    def sweep(self) -> int:
        """Evict every expired entry.

        Returns:
            Number of entries removed.
        """

        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
