"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every failure the server can run into falls into one of four buckets:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        WHERE ERRORS END UP                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   StartupFailure      cert / TLS context / bind    → process exits  │
    │   NotFound            file absent or outside root  → 404            │
    │   FileReadError       read failed mid-stream       → 500 or log     │
    │   ProtocolViolation   second status line attempted → never sent     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Per-request errors never escape the connection worker. Startup errors are
the only ones allowed to stop the process.

=============================================================================
"""


class StartupFailure(Exception):
    """
    The server cannot start.

    Raised when the certificate cannot be generated, the TLS context
    cannot load it, or the listening socket cannot be bound.
    """


class NotFound(Exception):
    """A requested file does not exist (or is not servable)."""

    def __init__(self, path: str):
        super().__init__(f"Not found: {path}")
        self.path = path


class FileReadError(Exception):
    """
    Reading a file failed after it was opened.

    The underlying OSError (if any) is chained as __cause__.
    """

    def __init__(self, path: str, message: str = "read failed"):
        super().__init__(f"{message}: {path}")
        self.path = path


class ProtocolViolation(RuntimeError):
    """An attempt was made to send a second status line on one response."""
