"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files from the static root: from the cache when possible,
otherwise streamed from disk in bounded chunks.

=============================================================================
FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    StaticFileHandler.handle()                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   resolve(request.path)                                             │
    │        │                                                             │
    │        ├── outside root ──────────────────────► 404 Not Found       │
    │        │                                                             │
    │   cache.get(path)                                                    │
    │        │                                                             │
    │        ├── hit ───────────────────────────────► 200, cached bytes   │
    │        │                                                             │
    │   exists(path)?                                                      │
    │        │                                                             │
    │        ├── no ────────────────────────────────► 404 Not Found       │
    │        │                                                             │
    │        └── yes ──► open_stream(path) ─────────► 200, streamed body  │
    │                          │                                           │
    │                          └── after the LAST chunk was produced:     │
    │                              cache.set(path, all chunks joined)     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CACHING FROM THE STREAM
=============================================================================

The streamed chunks are collected as they go out and the cache is filled
only once the stream has produced every byte of the declared size. A read
error or a client that hangs up half way leaves the cache untouched, so
a partial file is never cached. Files too large for a cache entry are
streamed without being collected, which keeps per-request memory at one
chunk for them.

This reads the file once. The alternative, streaming and then reading
the whole file again to cache it, doubles the disk I/O for nothing.

=============================================================================
"""

import logging
from typing import Iterator, Optional

from ..errors import NotFound
from ..files import FileAccessor, FileCache, FileStream
from ..http.mime_types import get_mime_type
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, HTTPStatus, ResponseBuilder, not_found


logger = logging.getLogger(__name__)


DEFAULT_CONTENT_TYPE = "text/html"


class StaticFileHandler:
    """
    Handler for serving static files.

    Usage:
        static = StaticFileHandler(FileAccessor("public"), FileCache())
        response = static.handle(request)

    Errors other than NotFound propagate; the router turns them into 500s.
    """

    def __init__(
        self,
        accessor: FileAccessor,
        cache: FileCache,
        detect_content_type: bool = False,
    ):
        self.accessor = accessor
        self.cache = cache
        self.detect_content_type = detect_content_type

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        try:
            path = self.accessor.resolve(request.path)
        except NotFound:
            return not_found()

        key = str(path)
        content_type = self._content_type(key)

        # ─────────────────────────────────────────────────────────────────
        # CACHE HIT
        # ─────────────────────────────────────────────────────────────────
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key}")
            return (ResponseBuilder()
                .status(HTTPStatus.OK)
                .content_type(content_type)
                .body(cached)
                .build())

        # ─────────────────────────────────────────────────────────────────
        # STREAM FROM DISK
        # ─────────────────────────────────────────────────────────────────
        if not self.accessor.exists(path):
            return not_found()

        try:
            stream = self.accessor.open_stream(path)
        except NotFound:
            # Deleted between exists() and open().
            return not_found()

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(content_type)
            .stream(CachingStream(stream, self.cache, key), stream.size)
            .build())

    def _content_type(self, path: str) -> str:
        if self.detect_content_type:
            return get_mime_type(path)
        return DEFAULT_CONTENT_TYPE


class CachingStream:
    """
    Iterable over a FileStream that fills the cache once fully consumed.

    close() releases the file whether iteration finished, failed half way,
    or never started (a HEAD request, or a client that left first).
    """

    def __init__(self, stream: FileStream, cache: FileCache, key: str):
        self._stream = stream
        self._cache = cache
        self._key = key
        self._chunks: Optional[Iterator[bytes]] = None

    @property
    def size(self) -> int:
        return self._stream.size

    def __iter__(self) -> Iterator[bytes]:
        if self._chunks is None:
            self._chunks = self._stream_and_cache()
        return self._chunks

    def _stream_and_cache(self) -> Iterator[bytes]:
        cacheable = self._stream.size <= self._cache.max_entry_bytes
        parts = []

        try:
            for chunk in self._stream:
                if cacheable:
                    parts.append(chunk)
                yield chunk
        finally:
            self._stream.close()

        # Only reached when every chunk was produced and consumed.
        if cacheable and self._stream.position == self._stream.size:
            self._cache.set(self._key, b"".join(parts))

    def close(self) -> None:
        if self._chunks is not None:
            self._chunks.close()
        self._stream.close()
