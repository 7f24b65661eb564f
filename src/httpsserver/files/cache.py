"""
=============================================================================
BEST-EFFORT FILE CACHE
=============================================================================

Keeps the contents of recently served files in memory so the next request
for the same path can skip the disk. It is an optimization only: every
caller must be ready for a miss, and a miss is never an error.

=============================================================================
HOW ENTRIES ARE HELD
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         FileCache internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   _entries  WeakValueDictionary   path → CachedFile   (weak)        │
    │                  ▲                                                   │
    │                  │ same objects                                      │
    │                  │                                                   │
    │   _recent   OrderedDict (LRU)     path → CachedFile   (strong)      │
    │             total size ≤ max_bytes                                   │
    │                                                                      │
    │   set()  ──► insert in both, evict oldest from _recent over budget  │
    │   evicted entry ──► only weakly held ──► reclaimed ──► finalizer   │
    │   get()  ──► lookup in _entries; a reclaimed entry is simply gone   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A purely weak mapping is useless under CPython: reference counting frees
an object the instant its last strong reference disappears, so a value
stored only weakly would be gone before set() returned. The strong LRU
ring is what "memory pressure" means here: a fixed byte budget. Once an
entry falls out of the ring it survives only while something else still
references it, and a weakref.finalize hook logs its reclamation.

=============================================================================
CONSISTENCY
=============================================================================

Entries are immutable. set() replaces the entry for a path in both maps
under one lock, so a hit always returns exactly the bytes of the most
recent set() for that path. The cache never looks at the disk again:
if a file changes after it was cached, the old bytes may be served until
the entry is evicted. That staleness window is accepted.

=============================================================================
"""

import logging
import threading
import weakref
from collections import OrderedDict
from typing import Callable, List, Optional


logger = logging.getLogger(__name__)


ReclaimCallback = Callable[[str], None]


class CachedFile:
    """One cached file body. Weak-referenceable, unlike bytes itself."""

    __slots__ = ("path", "content", "__weakref__")

    def __init__(self, path: str, content: bytes):
        self.path = path
        self.content = content

    def __len__(self) -> int:
        return len(self.content)


class FileCache:
    """
    Weakly-held mapping of file path → file contents.

    Usage:
        cache = FileCache(max_bytes=64 * 1024 * 1024)
        cache.set("/srv/public/index.html", data)

        content = cache.get("/srv/public/index.html")
        if content is None:
            ...  # miss: read from disk

    Args:
        max_bytes: Budget of strongly held content. 0 keeps nothing alive.
        max_entry_bytes: Larger contents are refused by set().
    """

    def __init__(self, max_bytes: int = 64 * 1024 * 1024, max_entry_bytes: Optional[int] = None):
        self.max_bytes = max_bytes
        self.max_entry_bytes = max_bytes if max_entry_bytes is None else max_entry_bytes

        self._entries: "weakref.WeakValueDictionary[str, CachedFile]" = weakref.WeakValueDictionary()
        self._recent: "OrderedDict[str, CachedFile]" = OrderedDict()
        self._recent_bytes = 0

        # Protects the two maps. Entries themselves are immutable.
        self._lock = threading.Lock()

        self._reclaim_callbacks: List[ReclaimCallback] = []

        # Metrics
        self.hits = 0
        self.misses = 0

    def on_reclaim(self, callback: ReclaimCallback) -> ReclaimCallback:
        """
        Register a callback fired with the path when an entry is reclaimed.

        Callbacks run from the finalizer and must not call back into the
        cache. Usable as a decorator.
        """
        self._reclaim_callbacks.append(callback)
        return callback

    def get(self, path: str) -> Optional[bytes]:
        """
        Return cached content for path, or None on a miss.

        A previous set() may already have been reclaimed; that is a miss.
        """
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                self.misses += 1
                return None

            if path in self._recent:
                self._recent.move_to_end(path)
            self.hits += 1
            return entry.content

    def set(self, path: str, content: bytes) -> bool:
        """
        Record content for path.

        No retention is guaranteed: the entry may be gone by the next get().

        Returns:
            False if the content is too large to be cached, True otherwise.
        """
        size = len(content)
        if size > self.max_entry_bytes:
            logger.debug(f"Not caching {path}: {size} bytes exceeds entry limit")
            return False

        entry = CachedFile(path, bytes(content))

        # The callback must not reference `entry`, or it would never die.
        weakref.finalize(entry, self._reclaimed, path)

        with self._lock:
            previous = self._recent.pop(path, None)
            if previous is not None:
                self._recent_bytes -= len(previous)

            self._entries[path] = entry
            self._recent[path] = entry
            self._recent_bytes += size

            # ─────────────────────────────────────────────────────────────
            # EVICT OVER BUDGET (oldest first)
            # ─────────────────────────────────────────────────────────────
            while self._recent_bytes > self.max_bytes and self._recent:
                _, evicted = self._recent.popitem(last=False)
                self._recent_bytes -= len(evicted)

        return True

    def _reclaimed(self, path: str) -> None:
        logger.debug(f"File {path} finalized")
        for callback in self._reclaim_callbacks:
            try:
                callback(path)
            except Exception:
                logger.exception(f"Reclaim callback failed for {path}")

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def resident_bytes(self) -> int:
        """Bytes currently held strongly by the LRU ring."""
        with self._lock:
            return self._recent_bytes

    @property
    def stats(self) -> dict:
        """Snapshot for debugging."""
        with self._lock:
            return {
                "entries": len(self._entries),
                "resident_bytes": self._recent_bytes,
                "max_bytes": self.max_bytes,
                "hits": self.hits,
                "misses": self.misses,
            }
