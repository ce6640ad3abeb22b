"""Background eviction of expired in-memory rate limit entries.

Redis expires keys on its own, so the sweeper only has work to do when the
in-process store is in use. It runs on a fixed interval, independent of
request traffic.
"""

from __future__ import annotations

import asyncio
import logging

from app.adapters.rate_limit.base import AbstractCounterStore
from app.adapters.rate_limit.in_memory import InMemoryCounterStore

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 300.0


class CleanupSweeper:
    """Periodically calls ``sweep()`` on an in-memory counter store."""

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self.passes = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_once(self) -> int:
        """Evict expired entries once.

        Errors are logged and swallowed so the timer keeps going.

        Returns:
            Number of evicted entries (0 for stores that self-expire or on error).
        """

        if not isinstance(self._store, InMemoryCounterStore):
            return 0

        try:
            evicted = self._store.sweep()
        except Exception as exc:  # noqa: BLE001 - the loop must survive any failure
            logger.exception(
                "rate_limit.sweep_failed",
                extra={"error_type": type(exc).__name__},
            )
            return 0

        self.passes += 1
        logger.debug(
            "rate_limit.sweep",
            extra={"evicted": evicted, "entries": self._store.size()},
        )
        return evicted

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.run_once()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop."""

        if self.running:
            return
        if not isinstance(self._store, InMemoryCounterStore):
            logger.info("rate_limit.sweeper_not_needed", extra={"backend": self._store.backend})
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("rate_limit.sweeper_started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""

        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("rate_limit.sweeper_stopped", extra={"passes": self.passes})
