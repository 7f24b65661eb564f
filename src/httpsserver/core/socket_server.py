"""
=============================================================================
LISTENING SOCKET
=============================================================================

SocketServer owns the listening TCP socket and the accept loop. It knows
nothing about HTTP: every accepted socket becomes a Connection (carrying
the server's TLS context) and is handed to a callback, which in practice
submits it to the worker pool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   start(handler)                                                     │
    │      ├──► socket() + SO_REUSEADDR + TCP_NODELAY                     │
    │      ├──► bind()          OSError ──► StartupFailure                │
    │      ├──► listen(backlog)                                            │
    │      ├──► on_listening(address)   "Server running on https://..."   │
    │      └──► accept loop, 1s timeout so shutdown() is noticed          │
    │              └──► handler(Connection(sock, tls_context=...))        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The TLS handshake is NOT done here. accept() returns a plain socket; the
worker that picks up the Connection performs the handshake, so a slow or
hostile client can never block the accept loop.

SIGTERM and SIGINT trigger a graceful shutdown when the server runs on
the main thread. Python only allows installing signal handlers there, so
a server started from a background thread (tests, embedding) leaves the
process's handlers alone and must be stopped with shutdown().

=============================================================================
"""

import logging
import signal
import socket
import ssl
import threading
from typing import Callable, List, Optional, Tuple

from ..config import ServerConfig
from ..errors import StartupFailure
from .connection import Connection


logger = logging.getLogger(__name__)


ListeningCallback = Callable[[Tuple[str, int]], None]


class SocketServer:
    """
    TCP listener handing accepted connections to a callback.

    Usage:
        server = SocketServer(config, tls_context=context)
        server.start(pool_submit)   # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig, tls_context: Optional[ssl.SSLContext] = None):
        self.config = config
        self.tls_context = tls_context

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None
        self._running = False

        self._listening_event = threading.Event()
        self._listening_callbacks: List[ListeningCallback] = []

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port).

        Before start() this is the configured address. Afterwards it is the
        real one, which matters when port 0 asked the OS for a free port.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def on_listening(self, callback: ListeningCallback) -> ListeningCallback:
        """Register a callback fired once the socket is listening."""
        self._listening_callbacks.append(callback)
        return callback

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Restarting must not fail on sockets still in TIME_WAIT.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses go out immediately; Nagle only adds latency here.
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up every second to check the running flag.
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on the main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen, and accept connections until shutdown().

        Raises:
            StartupFailure: If the address cannot be bound.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise StartupFailure(f"Cannot listen on {self.config.host}:{self.config.port}: {e}") from e

        self._bound_address = self._socket.getsockname()[:2]
        self._running = True

        self._setup_signals()

        logger.debug(f"Listening on {self.address[0]}:{self.address[1]}")
        self._listening_event.set()
        for callback in self._listening_callbacks:
            callback(self.address)

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                tls_context=self.tls_context,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Idempotent and callable from any thread."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._running = False
        self._listening_event.clear()
        logger.info("Socket server stopped")

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening. Returns False on timeout."""
        return self._listening_event.wait(timeout)
