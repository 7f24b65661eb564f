"""
Unit tests for RequestCounter.
"""

import threading

from httpsserver.counter import UINT32_MASK, RequestCounter


class TestRequestCounter:

    def test_starts_at_zero(self):
        assert RequestCounter().value() == 0

    def test_increment_returns_new_value(self):
        counter = RequestCounter()

        assert counter.increment() == 1
        assert counter.increment() == 2
        assert counter.value() == 2

    def test_wraps_at_32_bits(self):
        """After 2**32 - 1 the next increment yields 0, silently."""
        counter = RequestCounter(initial=UINT32_MASK)

        assert counter.value() == 4294967295
        assert counter.increment() == 0
        assert counter.increment() == 1

    def test_no_lost_updates(self):
        """50 threads x 1000 increments land exactly, with unique return values."""
        counter = RequestCounter()
        seen = []
        lock = threading.Lock()

        def worker():
            local = [counter.increment() for _ in range(1000)]
            with lock:
                seen.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(50)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert counter.value() == 50000
        assert sorted(seen) == list(range(1, 50001))

    def test_repr(self):
        counter = RequestCounter()
        counter.increment()
        assert repr(counter) == "RequestCounter(value=1)"
