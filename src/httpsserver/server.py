"""
=============================================================================
HTTPS SERVER RUNTIME
=============================================================================

HTTPSServer ties the pieces together: it generates the certificate, owns
the TLS listener and the worker pool, and runs one handling flow per
connection that feeds parsed requests to the RequestRouter.

=============================================================================
ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                         ┌──────────────┐                             │
    │                         │ HTTPSServer  │                             │
    │                         └──────┬───────┘                             │
    │         ┌──────────────┬───────┴──────┬──────────────┐               │
    │         ▼              ▼              ▼              ▼               │
    │  CertificateProvider SocketServer  ThreadPool   RequestRouter        │
    │   (once, at run())   (listener)   (workers)         │               │
    │                                          ┌──────────┼──────────┐    │
    │                                          ▼          ▼          ▼    │
    │                                   RequestCounter  Health   Static   │
    │                                                            handler  │
    │                                                          ┌────┴───┐ │
    │                                                          ▼        ▼ │
    │                                                     FileCache FileAccessor
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ONE CONNECTION, START TO FINISH (worker thread)
=============================================================================

    1. TLS handshake                 failure ──► close, nothing sent
    2. read_request()                timeout ──► 408, close
    3. parse                         malformed ──► 400/413/505, close
    4. router.handle(request)        counts, stamps HSTS, never raises
    5. write head                    status is now final
    6. write body or stream chunks   failure now ──► log, close
    7. keep-alive? ──► back to 2

Errors before step 5 still produce a proper response. Errors during step 6
cannot: the client has a 200 status line and a Content-Length, so the
only honest signal left is closing the connection early.

Responses that never pass through the router (408, 400, 503) still carry
Strict-Transport-Security and the current request count, taken without
incrementing since no request was served.

=============================================================================
"""

import logging
import ssl
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .access_log import RequestLog, log_request
from .config import ServerConfig
from .core import Connection, SocketServer, ThreadPool
from .counter import RequestCounter
from .errors import StartupFailure
from .files import FileAccessor, FileCache
from .handlers import HEALTH_PATH, HealthHandler, StaticFileHandler
from .http import HTTPParseError, HTTPRequest, HTTPResponse, HTTPStatus, RequestParser
from .router import COUNT_HEADER, RequestRouter
from .tls import Certificate, CertificateProvider, create_server_context


logger = logging.getLogger(__name__)


@dataclass
class ServerEvent:
    """
    A lifecycle event passed to on_start / on_stop callbacks.

    Attributes:
        type: "start" or "stop".
        address: The (host, port) the server is bound to.
        timestamp: When the event happened (UTC).
    """
    type: str
    address: Tuple[str, int]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def url(self) -> str:
        host, port = self.address
        return f"https://{host}:{port}"


EventCallback = Callable[[ServerEvent], None]


def log_server_running(event: ServerEvent) -> None:
    logger.info(f"Server running on {event.url}")


class HTTPSServer:
    """
    Single-process HTTPS static file server.

    Usage:
        server = HTTPSServer(ServerConfig(port=8443, static_root="site"))

        @server.on_start
        def announce(event):
            print("listening on", event.url)

        server.run()   # blocks until SIGINT/SIGTERM or server.shutdown()

    Args:
        config: Server configuration. Validated immediately.
        certificate_provider: Source of the TLS key material. A fresh
            self-signed certificate is generated on every run().
        configure_logging: Call logging.basicConfig() in run(). Embedders
            that configure logging themselves pass False.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        certificate_provider: Optional[CertificateProvider] = None,
        configure_logging: bool = True,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        self.configure_logging = configure_logging
        self.certificate_provider = certificate_provider or CertificateProvider()
        self.certificate: Optional[Certificate] = None

        # ─────────────────────────────────────────────────────────────────
        # REQUEST HANDLING
        # ─────────────────────────────────────────────────────────────────
        self.counter = RequestCounter()
        self.accessor = FileAccessor(
            self._static_root(),
            index_file=self.config.index_file,
            chunk_size=self.config.chunk_size,
        )
        self.cache = FileCache(
            max_bytes=self.config.cache_max_bytes,
            max_entry_bytes=self.config.cache_max_entry_bytes,
        )
        self.static = StaticFileHandler(
            self.accessor,
            self.cache,
            detect_content_type=self.config.detect_content_type,
        )
        self.router = RequestRouter(self.counter, fallback=self.static.handle)
        self.router.add_route(HEALTH_PATH, HealthHandler().handle)

        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        # ─────────────────────────────────────────────────────────────────
        # NETWORKING
        # ─────────────────────────────────────────────────────────────────
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._socket_server: Optional[SocketServer] = None
        self._running = False

        self._start_callbacks: List[EventCallback] = [log_server_running]
        self._stop_callbacks: List[EventCallback] = []

    def _static_root(self) -> Path:
        root = Path(self.config.static_root)
        if not root.is_absolute():
            root = Path.cwd() / root
        return root

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def on_start(self, callback: EventCallback) -> EventCallback:
        """Register a callback for when the listener is bound. Usable as a decorator."""
        self._start_callbacks.append(callback)
        return callback

    def on_stop(self, callback: EventCallback) -> EventCallback:
        """Register a callback for when the server has stopped."""
        self._stop_callbacks.append(callback)
        return callback

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port) once listening, the configured one before."""
        if self._socket_server is not None:
            return self._socket_server.address
        return (self.config.host, self.config.port)

    def run(self):
        """
        Start serving (blocking).

        Raises:
            StartupFailure: Certificate, TLS context or listener could not
                be set up. Nothing was served.
        """
        if self.configure_logging:
            self._setup_logging()

        tls_context = self._create_tls_context()

        self._socket_server = SocketServer(self.config, tls_context=tls_context)
        self._socket_server.on_listening(self._listening)

        self._thread_pool.start()
        self._running = True

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask a running server to stop. Safe from any thread."""
        if self._socket_server is not None:
            self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener is bound. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout

        while self._socket_server is None:
            if deadline is not None and time.monotonic() > deadline:
                return False
            time.sleep(0.01)

        remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
        return self._socket_server.wait_until_listening(remaining)

    def _create_tls_context(self) -> ssl.SSLContext:
        # Both raise StartupFailure themselves.
        self.certificate = self.certificate_provider.generate()
        logger.debug(f"Generated {self.certificate!r}")

        return create_server_context(
            self.certificate,
            minimum_version=self.config.tls_minimum_version,
        )

    def _listening(self, address: Tuple[str, int]):
        self._emit(self._start_callbacks, ServerEvent("start", address))

    def _emit(self, callbacks: List[EventCallback], event: ServerEvent):
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Error in {event.type} callback {callback!r}")

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("httpsserver").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=self.config.timeout)

        address = self.address
        self._emit(self._stop_callbacks, ServerEvent("stop", address))
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING (worker threads)
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """Queue a freshly accepted connection (accept thread)."""
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
            on_expire=self._reject_connection,
        )

        if not submitted:
            # The accept thread must not do a TLS handshake, so there is no
            # way to send a 503 here.
            logger.warning(f"[{conn.id}] Worker queue full, dropping connection from {conn.client_ip}")
            conn.close()

    def _reject_connection(self, conn: Connection):
        """Answer 503 to a connection that waited too long for a worker."""
        with conn:
            if not conn.handshake():
                return
            conn.begin_response()
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, time.perf_counter())

    def _process_connection(self, conn: Connection):
        with conn:
            if not conn.handshake():
                return

            while self._running:
                conn.begin_response()
                started = time.perf_counter()

                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, started)
                    break
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Rejected request from {conn.client_ip}: {e}")
                    self._send_error(conn, HTTPStatus(e.status_code), started)
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.info(f"[{conn.id}] Rejected request from {conn.client_ip}: {e}")
                    self._send_error(conn, HTTPStatus(e.status_code), started)
                    break

                response = self.router.handle(request)

                keep_alive = self.config.keep_alive and request.is_keep_alive
                self._set_connection_headers(response, keep_alive)

                if not self._write_response(conn, request, response, started):
                    break
                if not keep_alive:
                    break

                conn.set_keep_alive()

    def _set_connection_headers(self, response: HTTPResponse, keep_alive: bool):
        if keep_alive:
            response.headers.setdefault("Connection", "keep-alive")
            response.headers.setdefault("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")
        else:
            response.headers["Connection"] = "close"

    def _send_error(self, conn: Connection, status: HTTPStatus, started: float):
        """A final error response for a request that never reached the router."""
        response = self.router.error_response(status, status.phrase)
        response.headers["Connection"] = "close"
        self._write_response(conn, None, response, started)

    def _write_response(
        self,
        conn: Connection,
        request: Optional[HTTPRequest],
        response: HTTPResponse,
        started: float,
    ) -> bool:
        """
        Write a response to the connection.

        Returns:
            True if the whole response was written and the connection can
            be reused.
        """
        head_only = request is not None and request.method == "HEAD"
        bytes_sent = 0

        try:
            # ─────────────────────────────────────────────────────────────
            # BUFFERED BODY: one write
            # ─────────────────────────────────────────────────────────────
            if not response.is_streaming:
                data = response.head_bytes(self.config.server_name)
                if not head_only:
                    data += response.body
                    bytes_sent = len(response.body)
                return conn.send_response(data)

            if head_only:
                return conn.send_head(response.head_bytes(self.config.server_name))

            # ─────────────────────────────────────────────────────────────
            # STREAMED BODY
            # ─────────────────────────────────────────────────────────────
            # The first chunk is read before anything is sent, so a file
            # that cannot be read at all still gets a clean 500.
            chunks = iter(response.stream)
            first = next(chunks, b"")

            if not conn.send_head(response.head_bytes(self.config.server_name)):
                return False

            for chunk in _prepend(first, chunks):
                if not chunk:
                    continue
                if not conn.send_chunk(chunk):
                    logger.info(f"[{conn.id}] Client went away after {bytes_sent} bytes")
                    return False
                bytes_sent += len(chunk)

            return True

        except Exception:
            if conn.headers_sent:
                # Status line is out; closing early is the only signal left.
                logger.exception(
                    f"[{conn.id}] Response aborted after {bytes_sent} bytes "
                    f"of {response.body_length}"
                )
                return False

            logger.exception(f"[{conn.id}] Failed before response was committed")
            response.close()

            # The replacement keeps the count this request was given.
            count = response.headers.get(COUNT_HEADER)
            response = self.router.error_response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                "Internal Server Error",
                count=int(count) if count is not None else None,
            )
            response.headers["Connection"] = "close"
            conn.send_response(response.head_bytes(self.config.server_name) + response.body)
            bytes_sent = len(response.body)
            return False

        finally:
            response.close()
            log_request(
                RequestLog.create(conn.id, conn.client_ip, request, response, bytes_sent, started),
                log_format=self.config.log_format,
            )


def _prepend(first: bytes, rest):
    yield first
    yield from rest


def create_app(config: Optional[ServerConfig] = None, **kwargs) -> HTTPSServer:
    """
    Build a server from configuration.

    With no config, settings come from the environment (PORT, HOST,
    STATIC_ROOT, ...) via ServerConfig.from_env().
    """
    return HTTPSServer(config or ServerConfig.from_env(), **kwargs)
