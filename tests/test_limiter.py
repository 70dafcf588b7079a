"""
Unit tests for live/limiter.py

Tests cover:
- The in-flight cap under contention
- FIFO hand-over
- Cancellation while queued and during hand-over
- Token validation
- Sharing one limiter between event loops in different threads
"""

import asyncio
import threading

import pytest

from live.limiter import ConcurrencyLimiter


class TestCapacity:
    """Tests for the in-flight cap."""

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter(0)

    def test_peak_never_exceeds_capacity(self):
        limiter = ConcurrencyLimiter(2)

        async def call():
            async with limiter.slot():
                await asyncio.sleep(0.01)

        async def main():
            await asyncio.gather(*(call() for _ in range(5)))

        asyncio.run(main())
        assert limiter.peak_in_flight == 2
        assert limiter.in_flight == 0
        assert limiter.waiting == 0

    def test_waiters_served_in_order(self):
        limiter = ConcurrencyLimiter(1)
        order = []

        async def call(n):
            async with limiter.slot():
                order.append(n)
                await asyncio.sleep(0)

        async def main():
            first = await limiter.acquire()
            tasks = [asyncio.ensure_future(call(n)) for n in range(4)]
            await asyncio.sleep(0)
            assert limiter.waiting == 4
            limiter.release(first)
            await asyncio.gather(*tasks)

        asyncio.run(main())
        assert order == [0, 1, 2, 3]

    def test_reset_peak(self):
        limiter = ConcurrencyLimiter(3)

        async def main():
            tokens = [await limiter.acquire() for _ in range(3)]
            for token in tokens:
                limiter.release(token)

        asyncio.run(main())
        assert limiter.peak_in_flight == 3
        limiter.reset_peak()
        assert limiter.peak_in_flight == 0


class TestRelease:
    """Tests for release()."""

    def test_double_release_raises(self):
        limiter = ConcurrencyLimiter(1)

        async def main():
            token = await limiter.acquire()
            limiter.release(token)
            with pytest.raises(ValueError):
                limiter.release(token)

        asyncio.run(main())

    def test_unknown_token_raises(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter(1).release(12345)

    def test_slot_released_on_error(self):
        limiter = ConcurrencyLimiter(1)

        async def main():
            with pytest.raises(RuntimeError):
                async with limiter.slot():
                    raise RuntimeError("boom")

        asyncio.run(main())
        assert limiter.in_flight == 0


class TestCancellation:
    """A cancelled waiter must never leak a slot."""

    def test_cancel_while_queued(self):
        limiter = ConcurrencyLimiter(1)

        async def main():
            token = await limiter.acquire()
            waiter = asyncio.ensure_future(limiter.acquire())
            await asyncio.sleep(0)
            assert limiter.waiting == 1
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            assert limiter.waiting == 0
            limiter.release(token)
            assert limiter.in_flight == 0
            # The slot is still usable
            again = await asyncio.wait_for(limiter.acquire(), 1)
            limiter.release(again)

        asyncio.run(main())
        assert limiter.in_flight == 0

    def test_cancel_during_handover(self):
        limiter = ConcurrencyLimiter(1)

        async def main():
            token = await limiter.acquire()
            waiter = asyncio.ensure_future(limiter.acquire())
            await asyncio.sleep(0)
            # Hand the slot to the waiter, then cancel before it runs
            limiter.release(token)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            await asyncio.sleep(0)
            assert limiter.in_flight == 0

        asyncio.run(main())

    def test_timeout_while_waiting(self):
        limiter = ConcurrencyLimiter(1)

        async def main():
            token = await limiter.acquire()
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(limiter.acquire(), 0.01)
            limiter.release(token)

        asyncio.run(main())
        assert limiter.in_flight == 0
        assert limiter.waiting == 0


class TestCrossLoop:
    """One limiter shared by event loops in several threads."""

    def test_threads_share_capacity(self):
        limiter = ConcurrencyLimiter(2)
        errors = []

        async def worker():
            for _ in range(3):
                async with limiter.slot():
                    await asyncio.sleep(0.005)

        def run():
            try:
                asyncio.run(worker())
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert limiter.peak_in_flight <= 2
        assert limiter.in_flight == 0
