"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the HTTPS static file server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m httpsserver --port 8443                         │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── PORT=8443 HOST=0.0.0.0 python -m httpsserver              │
    │                                                                      │
    │   3. Defaults in this dataclass                                     │
    │      └── localhost:30000, ./public                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The CLI reads from_env() first and uses those values as argparse defaults,
so a flag always wins over the environment.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


KIB = 1024
MIB = 1024 * KIB

TLS_VERSIONS = ("TLSv1.2", "TLSv1.3")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the HTTPS server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK         host, port, backlog, buffer_size, timeout
    HTTP            keep_alive, keep_alive_timeout, max_request_size
    THREADING       min_workers, max_workers, queue_size
    STATIC FILES    static_root, index_file, chunk_size, detect_content_type
    FILE CACHE      cache_max_bytes, cache_max_entry_bytes
    TLS             tls_minimum_version
    LOGGING         log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "localhost"
    """Interface to bind. "0.0.0.0" for all interfaces (containers)."""

    port: int = 30000
    """
    Port to listen on. 0 lets the OS pick a free port, which is what
    the tests do; the bound port is then available on HTTPSServer.address.
    """

    backlog: int = 128
    """Maximum number of queued connections before the OS refuses more."""

    buffer_size: int = 8192
    """Bytes read per recv() call."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. Also bounds the TLS handshake."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1 * MIB
    """Requests are GET-like; anything bigger than this is hostile."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 32
    queue_size: int = 256

    # ─────────────────────────────────────────────────────────────────────
    # STATIC FILES
    # ─────────────────────────────────────────────────────────────────────

    static_root: str = "public"
    """
    Directory files are served from. Relative paths are resolved against
    the working directory at startup.
    """

    index_file: str = "index.html"
    """File served for GET /."""

    chunk_size: int = 64 * KIB
    """Size of each streamed chunk. Streaming memory per request is bounded by this."""

    detect_content_type: bool = False
    """
    When False every file is served as text/html (the historical behaviour).
    When True the Content-Type is derived from the file extension.
    """

    # ─────────────────────────────────────────────────────────────────────
    # FILE CACHE
    # ─────────────────────────────────────────────────────────────────────

    cache_max_bytes: int = 64 * MIB
    """
    Byte budget of the strong references that keep cache entries alive.
    Entries pushed out of the budget become weakly held only and are
    reclaimed once no response is still using them.
    """

    cache_max_entry_bytes: int = 8 * MIB
    """Files bigger than this are streamed but never cached."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    tls_minimum_version: str = "TLSv1.2"
    """Lowest TLS version accepted. "TLSv1.3" allows TLS 1.3 only."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"

    log_format: str = "text"
    """Access log lines: "text" (Apache-like) or "json" (one object per line)."""

    server_name: str = "httpsserver/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        PORT              Listening port (default: 30000)
        HOST              Listening host (default: localhost)
        STATIC_ROOT       Directory to serve (default: ./public)
        LOG_LEVEL         Logging level (default: INFO)
        LOG_FORMAT        Access log format, text or json (default: text)
        WORKERS           Max worker threads (default: 32)
        CACHE_MAX_BYTES   File cache budget in bytes (default: 64 MiB)
        TLS_MIN_VERSION   TLSv1.2 or TLSv1.3 (default: TLSv1.2)

        =====================================================================
        """
        defaults = cls()
        max_workers = int(os.getenv("WORKERS", str(defaults.max_workers)))

        return cls(
            host=os.getenv("HOST", defaults.host),
            port=int(os.getenv("PORT", str(defaults.port))),
            static_root=os.getenv("STATIC_ROOT", defaults.static_root),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
            log_format=os.getenv("LOG_FORMAT", defaults.log_format),
            min_workers=min(defaults.min_workers, max_workers),
            max_workers=max_workers,
            cache_max_bytes=int(os.getenv("CACHE_MAX_BYTES", str(defaults.cache_max_bytes))),
            tls_minimum_version=os.getenv("TLS_MIN_VERSION", defaults.tls_minimum_version),
        )

    def validate(self) -> None:
        """Fail fast on values that would only blow up later."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.cache_max_bytes < 0 or self.cache_max_entry_bytes < 0:
            raise ValueError("cache sizes must be >= 0")

        if self.tls_minimum_version not in TLS_VERSIONS:
            raise ValueError(
                f"Invalid TLS version: {self.tls_minimum_version}. "
                f"Expected one of {', '.join(TLS_VERSIONS)}."
            )

        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid log format: {self.log_format}. "
                f"Expected one of {', '.join(LOG_FORMATS)}."
            )
