"""
FIFO admission gate bounding concurrent calls to the document store.

A released slot is handed directly to the oldest waiter, so a newcomer can
never overtake a queued caller.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal

from chatly_engine.errors import RateLimitedError
from chatly_engine.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class AdmissionGate:
    def __init__(
        self,
        capacity: int = 5,
        overflow: Literal["block", "fail_fast"] = "block",
        max_queue_depth: int = 100,
    ):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.overflow = overflow
        self.max_queue_depth = max_queue_depth
        self._active = 0
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._lock = threading.Lock()

    @property
    def active(self) -> int:
        return self._active

    @property
    def queued(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self, key: str) -> None:
        with self._lock:
            if self._active < self.capacity and not self._waiters:
                self._active += 1
                return

            if self.overflow == "fail_fast" and len(self._waiters) >= self.max_queue_depth:
                logger.warning(
                    "Admission queue full, rejecting request",
                    key=key,
                    capacity=self.capacity,
                    queue_depth=len(self._waiters),
                )
                raise RateLimitedError(
                    f"Too many concurrent requests for {key}",
                    key=key,
                    capacity=self.capacity,
                    queue_depth=len(self._waiters),
                )

            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)

        try:
            await waiter
        except asyncio.CancelledError:
            with self._lock:
                handed_over = waiter.done() and not waiter.cancelled()
                if not handed_over:
                    try:
                        self._waiters.remove(waiter)
                    except ValueError:
                        pass
            if handed_over:
                # The slot was already ours; pass it on instead of leaking it.
                self.release()
            raise

    def release(self) -> None:
        with self._lock:
            while self._waiters:
                waiter = self._waiters.popleft()
                if not waiter.done():
                    waiter.set_result(None)
                    return
            self._active -= 1

    @asynccontextmanager
    async def slot(self, key: str) -> AsyncIterator[None]:
        await self.acquire(key)
        try:
            yield
        finally:
            self.release()
