"""Deduplicating, rate limited work queue for claim keys.

The queue holds keys, not objects: workers always read the current object
from the cache. A key added several times before a worker picks it up is
processed once. A key added while a worker processes it is parked in the
dirty set and handed out again only after the worker calls `done`, so two
workers never handle the same key at once.
"""

import asyncio
import logging
from collections import deque

logger = logging.getLogger(__name__)

INITIAL_BACKOFF_SECONDS = 0.005
MAX_BACKOFF_SECONDS = 1000.0


class ExponentialBackoffRateLimiter:
    """Per-key exponential backoff: ``base * 2**failures``, capped."""

    def __init__(self, base_delay: float = INITIAL_BACKOFF_SECONDS, max_delay: float = MAX_BACKOFF_SECONDS):
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures: dict[str, int] = {}

    def when(self, key: str) -> float:
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        # Long past the cap; keeps 2**failures convertible to float.
        if failures > 64:
            return self._max_delay
        return min(self._base_delay * 2**failures, self._max_delay)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: str) -> None:
        self._failures.pop(key, None)


class RateLimitingQueue:
    def __init__(self, name: str, rate_limiter: ExponentialBackoffRateLimiter | None = None):
        self.name = name
        self._rate_limiter = rate_limiter if rate_limiter is not None else ExponentialBackoffRateLimiter()
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._not_empty = asyncio.Event()
        self._timers: set[asyncio.TimerHandle] = set()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: str) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._not_empty.set()

    async def get(self) -> tuple[str | None, bool]:
        """Wait for the next key. Returns ``(None, True)`` once the queue is shut down."""
        while not self._queue and not self._shutting_down:
            self._not_empty.clear()
            await self._not_empty.wait()
        if self._shutting_down:
            return None, True

        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        return key, False

    def done(self, key: str) -> None:
        """Mark `key` as processed; a re-add that arrived meanwhile is queued now."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            self._not_empty.set()

    def add_after(self, key: str, delay: float) -> None:
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        def _fire() -> None:
            self._timers.discard(handle)
            self.add(key)

        handle = asyncio.get_running_loop().call_later(delay, _fire)
        self._timers.add(handle)

    def add_rate_limited(self, key: str) -> float:
        """Re-add `key` after its backoff delay and return that delay."""
        delay = self._rate_limiter.when(key)
        self.add_after(key, delay)
        return delay

    def forget(self, key: str) -> None:
        self._rate_limiter.forget(key)

    def num_requeues(self, key: str) -> int:
        return self._rate_limiter.num_requeues(key)

    def shut_down(self) -> None:
        """Stop handing out keys; blocked and future `get` calls return immediately."""
        if self._shutting_down:
            return
        logger.debug("Shutting down queue %s with %d pending keys", self.name, len(self._queue))
        self._shutting_down = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()
        self._not_empty.set()
