"""
=============================================================================
FILE ACCESS
=============================================================================

Maps request paths onto the static root and reads files in bounded chunks.

=============================================================================
URL → FILESYSTEM
=============================================================================

    GET /                   →  <root>/index.html
    GET /css/site.css       →  <root>/css/site.css
    GET /../../etc/passwd   →  NotFound  (resolves outside <root>)

The resolved path must stay inside the root after ".." segments and
symlinks are followed. Anything that escapes is reported exactly like a
missing file: the client gets a 404 and learns nothing about what exists
outside the root.

=============================================================================
STREAMING READS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      FileStream lifecycle                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   open_stream(path)        open() + fstat()  → size is now fixed    │
    │        │                                                             │
    │        ▼                                                             │
    │   for chunk in stream:     read(64 KiB) at offset 0, 64K, 128K ...  │
    │        │                   until `size` bytes were produced          │
    │        │                                                             │
    │        ├── exhausted    ─┐                                           │
    │        ├── read error   ─┼──►  file handle closed                   │
    │        └── abandoned    ─┘     (finally / close())                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only one chunk is in memory per request, however large the file is. A
stream can be iterated once; open a new one to read the file again.

=============================================================================
"""

import logging
import os
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from ..errors import FileReadError, NotFound


logger = logging.getLogger(__name__)


DEFAULT_CHUNK_SIZE = 64 * 1024


class FileStream:
    """
    A one-shot, chunked reader over a single open file.

    The file is opened (and its size taken) on construction, so a missing
    or unreadable file fails before the caller commits to a response.

    Usage:
        with accessor.open_stream(path) as stream:
            for chunk in stream:
                conn.send_chunk(chunk)
    """

    def __init__(self, path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.path = path
        self.chunk_size = chunk_size
        self.position = 0
        self._consumed = False

        try:
            self._file: Optional[BinaryIO] = open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise NotFound(str(path)) from e
        except OSError as e:
            raise FileReadError(str(path), "open failed") from e

        try:
            self.size = os.fstat(self._file.fileno()).st_size
        except OSError as e:
            self.close()
            raise FileReadError(str(path), "stat failed") from e

    @property
    def closed(self) -> bool:
        """True once the underlying file handle has been released."""
        return self._file is None

    def __iter__(self) -> Iterator[bytes]:
        if self._consumed:
            raise RuntimeError(f"Stream for {self.path} was already consumed")
        self._consumed = True
        return self._chunks()

    def _chunks(self) -> Iterator[bytes]:
        try:
            remaining = self.size
            while remaining > 0:
                if self._file is None:
                    # Closed by the consumer while suspended.
                    return
                try:
                    chunk = self._file.read(min(self.chunk_size, remaining))
                except OSError as e:
                    raise FileReadError(str(self.path)) from e

                if not chunk:
                    raise FileReadError(
                        str(self.path),
                        f"unexpected end of file at offset {self.position} of {self.size}",
                    )

                self.position += len(chunk)
                remaining -= len(chunk)
                yield chunk
        finally:
            self.close()

    def close(self) -> None:
        """Release the file handle. Safe to call more than once."""
        if self._file is not None:
            try:
                self._file.close()
            finally:
                self._file = None

    def __enter__(self) -> "FileStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class FileAccessor:
    """
    Resolves request paths under a root directory and reads files.

    =========================================================================
    OPERATIONS
    =========================================================================

    resolve(request_path)   URL path → absolute Path inside root
    exists(path)            Is it a regular file?
    open_stream(path)       FileStream of chunk_size pieces
    read_all(path)          Whole file as bytes

    =========================================================================
    """

    def __init__(
        self,
        root: Union[str, Path],
        index_file: str = "index.html",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        # Resolve once so the containment check compares like with like.
        self.root = Path(root).resolve()
        self.index_file = index_file
        self.chunk_size = chunk_size

        if not self.root.is_dir():
            logger.warning(f"Static root does not exist: {self.root}")

    def resolve(self, request_path: str) -> Path:
        """
        Map a request path to a filesystem path under the root.

        Args:
            request_path: Decoded URL path, e.g. "/" or "/css/site.css".

        Returns:
            Absolute path inside the root.

        Raises:
            NotFound: If the path resolves outside the root or is unusable.
        """
        if request_path in ("", "/"):
            return self.root / self.index_file

        relative = request_path.lstrip("/")

        try:
            candidate = (self.root / relative).resolve()
        except (OSError, ValueError) as e:
            # ValueError: embedded NUL byte. OSError: symlink loop.
            raise NotFound(request_path) from e

        # ─────────────────────────────────────────────────────────────────
        # SECURITY: PATH TRAVERSAL CHECK
        # ─────────────────────────────────────────────────────────────────
        try:
            candidate.relative_to(self.root)
        except ValueError:
            logger.warning(f"Path traversal attempt: {request_path}")
            raise NotFound(request_path)

        return candidate

    def exists(self, path: Path) -> bool:
        """True only for regular files; directories are never served."""
        try:
            return path.is_file()
        except OSError:
            return False

    def open_stream(self, path: Path) -> FileStream:
        """
        Open a chunked stream over a file.

        Raises:
            NotFound: If the file does not exist.
            FileReadError: If it exists but cannot be opened.
        """
        return FileStream(path, self.chunk_size)

    def read_all(self, path: Path) -> bytes:
        """
        Read a whole file synchronously.

        Raises:
            NotFound: If the file does not exist.
            FileReadError: If reading fails.
        """
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise NotFound(str(path)) from e
        except OSError as e:
            raise FileReadError(str(path)) from e
