"""
Resizable concurrency gate for processor dispatch
"""

import asyncio
import logging
from typing import Optional, Set

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """Counting gate whose limit can change while jobs hold or wait on it.

    Works like ``asyncio.Semaphore`` but ``resize`` takes effect immediately:
    raising the limit wakes waiters, lowering it lets running holders finish
    and admits nobody new until the count drops below the new limit.
    """

    def __init__(self, limit: int, name: str = "gate"):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.name = name
        self._limit = limit
        self._active = 0
        self._waiting = 0
        self._condition: Optional[asyncio.Condition] = None
        self._wakers: Set[asyncio.Task] = set()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return self._waiting

    def _get_condition(self) -> asyncio.Condition:
        # Created lazily so the gate can be built outside a running loop
        if self._condition is None:
            self._condition = asyncio.Condition()
        return self._condition

    async def acquire(self, timeout: Optional[float] = None) -> None:
        """Wait for a slot.

        Raises:
            asyncio.TimeoutError: If no slot frees up within ``timeout`` seconds
        """
        condition = self._get_condition()
        self._waiting += 1
        try:
            async with condition:
                await asyncio.wait_for(
                    condition.wait_for(lambda: self._active < self._limit), timeout
                )
                self._active += 1
        finally:
            self._waiting -= 1

    async def release(self) -> None:
        condition = self._get_condition()
        async with condition:
            self._active = max(0, self._active - 1)
            condition.notify()

    def resize(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        old, self._limit = self._limit, limit
        logger.info("Concurrency gate %s resized %d -> %d", self.name, old, limit)
        if limit <= old or self._condition is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop, so nobody can be waiting
            return
        waker = loop.create_task(self._wake_all())
        self._wakers.add(waker)
        waker.add_done_callback(self._wakers.discard)

    async def _wake_all(self) -> None:
        condition = self._get_condition()
        async with condition:
            condition.notify_all()
