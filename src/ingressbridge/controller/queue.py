"""Keyed work queue for reconcile requests.

Keys are ``namespace/name`` strings. The queue guarantees that:

- a key added several times before a worker picks it up is handed out once;
- a key is never handed to two workers at the same time. Adding a key while
  it is being processed marks it dirty, and it is queued again when the
  worker calls ``done()``;
- failed keys come back after an exponential backoff, up to a retry limit.
"""

from __future__ import annotations

import asyncio

import structlog

logger = structlog.get_logger()


class WorkQueue:
    """Deduplicating asyncio work queue with per-key backoff.

    Args:
        max_retries: Attempts after the first failure before a key is dropped.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for the retry delay.
    """

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 0.5,
        max_delay: float = 30.0,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._failures: dict[str, int] = {}
        self._timers: set[asyncio.TimerHandle] = set()
        self._shutdown = False

    def __len__(self) -> int:
        return self._queue.qsize()

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def add(self, key: str) -> None:
        """Queue ``key`` unless it is already waiting."""
        if self._shutdown or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.put_nowait(key)

    def add_after(self, key: str, delay: float) -> None:
        """Queue ``key`` once ``delay`` seconds have passed."""
        if self._shutdown:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def fire() -> None:
            self._timers.discard(handle)
            self.add(key)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)

    async def get(self) -> str:
        """Wait for the next key and mark it as being processed."""
        key = await self._queue.get()
        self._dirty.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: str) -> None:
        """Finish processing ``key``; requeue it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutdown:
            self._queue.put_nowait(key)
        self._queue.task_done()

    def backoff(self, key: str) -> float:
        """Delay before the next retry of ``key``."""
        failures = self._failures.get(key, 1)
        return min(self.base_delay * (2 ** (failures - 1)), self.max_delay)

    def retry(self, key: str) -> bool:
        """Schedule ``key`` again after a failure.

        Returns False when the key has used up its retries and was dropped.
        """
        failures = self._failures.get(key, 0) + 1
        if failures > self.max_retries:
            self.forget(key)
            logger.warning("Dropping key after repeated failures", key=key, attempts=failures)
            return False
        self._failures[key] = failures
        delay = self.backoff(key)
        logger.debug("Retrying key", key=key, attempt=failures, delay=delay)
        self.add_after(key, delay)
        return True

    def failures(self, key: str) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: str) -> None:
        """Clear the failure history of ``key``."""
        self._failures.pop(key, None)

    async def join(self) -> None:
        """Wait until every queued key has been processed."""
        await self._queue.join()

    def shutdown(self) -> None:
        """Stop accepting keys and cancel pending retries."""
        self._shutdown = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
