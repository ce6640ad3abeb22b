"""Counter store interfaces.

The limiter depends on this abstraction (not the concrete implementation)
so the shared Redis store and the in-process fallback are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterSnapshot:
    """State of a bucket right after an increment.

    Attributes:
        count: Requests observed in the current window, including this one.
        ttl_ms: Milliseconds until the window resets.
    """

    count: int
    ttl_ms: int


class AbstractCounterStore(ABC):
    """Interface for fixed-window counter stores."""

    #: Short backend name reported by health checks and logs.
    backend: str = "abstract"

    @abstractmethod
    async def increment(self, key: str, window_ms: int) -> CounterSnapshot:
        """Atomically increment the counter for ``key`` and read it back.

        The first increment of a window starts it with a lifetime of
        ``window_ms``; later increments inside the window keep the expiry.

        Args:
            key: Bucket key produced by the key generator.
            window_ms: Window length in milliseconds.

        Returns:
            CounterSnapshot with the post-increment count and remaining TTL.

        Raises:
            RateLimitStoreError: If the backing store fails.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
