"""
Static file access: path resolution, chunked reads, and the file cache.
"""

from .accessor import FileAccessor, FileStream, DEFAULT_CHUNK_SIZE
from .cache import FileCache, CachedFile

__all__ = [
    "FileAccessor",
    "FileStream",
    "DEFAULT_CHUNK_SIZE",
    "FileCache",
    "CachedFile",
]
