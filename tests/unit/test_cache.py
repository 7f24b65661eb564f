"""
Unit tests for FileCache.
"""

import gc
import logging
import threading

from httpsserver.files import FileCache


class TestFileCache:
    """Tests for FileCache get/set and reclamation."""

    def test_miss_is_none(self):
        cache = FileCache()
        assert cache.get("/srv/missing.html") is None
        assert cache.misses == 1

    def test_hit_returns_last_set(self):
        cache = FileCache()
        cache.set("/srv/a.html", b"one")
        cache.set("/srv/a.html", b"two")

        assert cache.get("/srv/a.html") == b"two"
        assert cache.hits == 1
        assert len(cache) == 1
        assert cache.resident_bytes == 3

    def test_keys_are_independent(self):
        cache = FileCache()
        cache.set("/srv/a.html", b"a")
        cache.set("/srv/b.html", b"b")

        assert cache.get("/srv/a.html") == b"a"
        assert cache.get("/srv/b.html") == b"b"

    def test_oversized_entry_refused(self):
        cache = FileCache(max_bytes=1000, max_entry_bytes=10)

        assert cache.set("/srv/big.bin", b"x" * 11) is False
        assert cache.get("/srv/big.bin") is None

    def test_eviction_oldest_first(self):
        cache = FileCache(max_bytes=10)
        cache.set("/a", b"12345")
        cache.set("/b", b"12345")
        cache.get("/a")               # /a is now most recent
        cache.set("/c", b"12345")     # over budget, /b goes
        gc.collect()

        assert cache.get("/a") == b"12345"
        assert cache.get("/b") is None
        assert cache.get("/c") == b"12345"
        assert cache.resident_bytes == 10

    def test_reclaimed_entry_is_a_miss_and_logged(self, caplog):
        """With no budget, entries are reclaimed as soon as set() returns."""
        cache = FileCache(max_bytes=0, max_entry_bytes=100)
        reclaimed = []
        cache.on_reclaim(reclaimed.append)

        with caplog.at_level(logging.DEBUG, logger="httpsserver.files.cache"):
            assert cache.set("/srv/index.html", b"<html></html>") is True
            gc.collect()

        assert cache.get("/srv/index.html") is None
        assert reclaimed == ["/srv/index.html"]
        assert "File /srv/index.html finalized" in caplog.text

    def test_failing_reclaim_callback_is_logged(self, caplog):
        cache = FileCache(max_bytes=0)

        @cache.on_reclaim
        def broken(path):
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="httpsserver.files.cache"):
            cache.set("/srv/a.html", b"a")
            gc.collect()

        assert "Reclaim callback failed" in caplog.text

    def test_concurrent_access(self):
        """Concurrent set/get never returns bytes from another path."""
        cache = FileCache(max_bytes=64 * 1024)
        errors = []

        def worker(n: int):
            path = f"/srv/file-{n % 8}.html"
            content = path.encode() * 10
            for _ in range(200):
                cache.set(path, content)
                got = cache.get(path)
                if got is not None and got != content:
                    errors.append((path, got[:20]))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []

    def test_stats(self):
        cache = FileCache(max_bytes=100)
        cache.set("/a", b"abc")
        cache.get("/a")
        cache.get("/b")

        stats = cache.stats
        assert stats["entries"] == 1
        assert stats["resident_bytes"] == 3
        assert stats["hits"] == 1
        assert stats["misses"] == 1
