"""Deduplicating, rate limited work queue of object keys.

A key is never handed to two workers at once: while a key is being
processed, adding it again only marks it dirty and `done()` puts it back.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Deque, Dict, Optional, Set

from stasher.sensors import OperatorSensor

logger = logging.getLogger(__name__)


class ItemExponentialRateLimiter:
    """Per-key delay of `base_delay * 2**failures`, capped at `max_delay`."""

    def __init__(self, base_delay: float = 0.005, max_delay: float = 1000.0):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures: Dict[str, int] = {}

    def when(self, key: str) -> float:
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        # cap the exponent too, large retry counts would overflow the float
        if failures > 64:
            return self.max_delay
        return min(self.base_delay * 2 ** failures, self.max_delay)

    def num_requeues(self, key: str) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: str) -> None:
        self._failures.pop(key, None)


class WorkQueue:
    def __init__(
        self,
        name: str,
        rate_limiter: Optional[ItemExponentialRateLimiter] = None,
        sensor: Optional[OperatorSensor] = None,
    ):
        self.name = name
        self.rate_limiter = rate_limiter or ItemExponentialRateLimiter()
        self.sensor = sensor
        self._queue: Deque[str] = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._added_at: Dict[str, float] = {}
        self._delayed: Dict[str, asyncio.TimerHandle] = {}
        self._ready = asyncio.Event()
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
        self._added_at.setdefault(key, time.monotonic())
        if key in self._processing:
            return
        self._queue.append(key)
        self._ready.set()
        if self.sensor:
            self.sensor.on_reconcile_queued(self.name, key, len(self._queue))

    async def get(self) -> Optional[str]:
        """Wait for the next key, None once the queue is shut down and drained."""
        while not self._queue:
            if self._shutting_down:
                return None
            self._ready.clear()
            await self._ready.wait()
        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        added_at = self._added_at.pop(key, None)
        if self.sensor and added_at is not None:
            self.sensor.on_reconcile_dequeued(self.name, key, time.monotonic() - added_at)
        return key

    def done(self, key: str) -> None:
        """Mark `key` processed, requeueing it when it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty:
            self._queue.append(key)
            self._ready.set()

    def add_after(self, key: str, delay: float) -> None:
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        existing = self._delayed.get(key)
        loop = asyncio.get_running_loop()
        if existing is not None:
            # keep the earliest deadline
            if existing.when() <= loop.time() + delay:
                return
            existing.cancel()
        self._delayed[key] = loop.call_later(delay, self._fire, key)

    def _fire(self, key: str) -> None:
        self._delayed.pop(key, None)
        self.add(key)

    def add_rate_limited(self, key: str) -> None:
        delay = self.rate_limiter.when(key)
        logger.debug(f"Requeueing {self.name} {key} in {delay:.3f}s")
        self.add_after(key, delay)

    def forget(self, key: str) -> None:
        self.rate_limiter.forget(key)

    def num_requeues(self, key: str) -> int:
        return self.rate_limiter.num_requeues(key)

    def shut_down(self) -> None:
        self._shutting_down = True
        for handle in self._delayed.values():
            handle.cancel()
        self._delayed.clear()
        self._ready.set()
