"""
Concurrency limiter shared by every outbound request.

A counting semaphore with explicit tokens. The accounting sits behind a
threading.Lock and waiters are woken with call_soon_threadsafe, so one
limiter can be shared by requests running on different event loops (the
HTTP surface runs each request on its own loop in a worker thread).
"""

import asyncio
import itertools
import logging
import threading
from collections import deque
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 6


class ConcurrencyLimiter:
    """
    Caps the number of in-flight outbound requests.

    Usage:
        token = await limiter.acquire()
        try:
            ...
        finally:
            limiter.release(token)

    or:
        async with limiter.slot():
            ...

    Waiters are served first come, first served. A waiter cancelled while
    queued (or while its slot is being handed over) never leaks the slot.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Limiter capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._lock = threading.Lock()
        self._holders: set[int] = set()
        self._waiters: deque = deque()
        self._tokens = itertools.count(1)
        self._peak = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._holders)

    @property
    def peak_in_flight(self) -> int:
        with self._lock:
            return self._peak

    @property
    def waiting(self) -> int:
        with self._lock:
            return len(self._waiters)

    def reset_peak(self) -> None:
        with self._lock:
            self._peak = len(self._holders)

    async def acquire(self) -> int:
        """Wait for a free slot and return its token."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if len(self._holders) < self._capacity and not self._waiters:
                return self._grant_locked()
            future = loop.create_future()
            self._waiters.append((loop, future))

        try:
            return await future
        except asyncio.CancelledError:
            with self._lock:
                try:
                    self._waiters.remove((loop, future))
                except ValueError:
                    pass
            # The slot was handed over just before the cancel landed
            if future.done() and not future.cancelled():
                self.release(future.result())
            raise

    def release(self, token: int) -> None:
        """Return a slot. Unknown or already released tokens raise ValueError."""
        with self._lock:
            if token not in self._holders:
                raise ValueError(f"Token {token} is not held")
            self._holders.discard(token)
            self._wake_next_locked()

    @asynccontextmanager
    async def slot(self):
        token = await self.acquire()
        try:
            yield token
        finally:
            self.release(token)

    def _grant_locked(self) -> int:
        token = next(self._tokens)
        self._holders.add(token)
        if len(self._holders) > self._peak:
            self._peak = len(self._holders)
        return token

    def _wake_next_locked(self) -> None:
        while self._waiters and len(self._holders) < self._capacity:
            loop, future = self._waiters.popleft()
            if future.cancelled():
                continue
            token = self._grant_locked()
            try:
                loop.call_soon_threadsafe(self._deliver, future, token)
            except RuntimeError:
                # Waiter's loop is closed
                logger.warning("Dropping limiter waiter on a closed event loop")
                self._holders.discard(token)
                continue
            return

    def _deliver(self, future: asyncio.Future, token: int) -> None:
        if future.done():
            self.release(token)
        else:
            future.set_result(token)
