"""
=============================================================================
CLIENT CONNECTIONS
=============================================================================

A Connection wraps one accepted client socket: the TLS handshake, buffered
reading of complete requests, and writing responses in two phases (head,
then body).

=============================================================================
TLS SITS UNDER EVERYTHING ELSE
=============================================================================

The listener accepts plain TCP sockets. Each one is wrapped in TLS here,
in the worker thread that serves it, not in the accept loop:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   accept loop          worker thread                                 │
    │   ───────────          ─────────────────────────────────────────    │
    │   accept() ──────────► Connection(sock, tls_context=ctx)            │
    │   (never blocks         │                                            │
    │    on a slow client)    ├── handshake()      TLS ClientHello ...     │
    │                         ├── read_request()   decrypted bytes         │
    │                         ├── send_head()      status + headers        │
    │                         ├── send_chunk() *   body                    │
    │                         └── close()                                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A client that connects and never finishes its handshake (or speaks plain
HTTP to the HTTPS port) costs one worker until the socket timeout, and
never stalls the listener.

Above the TLS layer the byte stream behaves exactly like TCP: no message
boundaries, so requests are buffered until the blank line that ends the
headers, then Content-Length more bytes.

=============================================================================
HEADERS ARE SENT ONCE
=============================================================================

Once the status line and headers are on the wire the status is final.
send_head() records that in `headers_sent`, and a second send_head() for
the same response raises ProtocolViolation instead of writing garbage
into the body. begin_response() resets the flag for the next request on
a keep-alive connection.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► HANDSHAKE ──► READING ──► PROCESSING ──► WRITING ──┐
     │          │            │                         │       │
     │          │            │                         │       ▼
     │          │            │                         │   KEEP_ALIVE
     │          ▼            ▼                         │       │
     └──────► CLOSING ◄──────┴─────────────────────────┴───────┘
                │
                ▼
              CLOSED

=============================================================================
"""

import logging
import socket
import ssl
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..errors import ProtocolViolation
from ..http.request import HTTPParseError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and cleanup."""
    NEW = "new"                # Accepted, nothing done yet
    HANDSHAKE = "handshake"    # TLS negotiation in progress
    READING = "reading"        # Reading request bytes
    PROCESSING = "processing"  # Request parsed, handler running
    WRITING = "writing"        # Sending the response
    KEEP_ALIVE = "keep_alive"  # Response done, waiting for the next request
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One client connection.

    Attributes:
        socket: The client socket. Replaced by the TLS socket after handshake().
        address: Client's (ip, port) tuple.
        tls_context: Server-side SSL context; None serves plain TCP (tests).
        id: Short connection identifier for log lines.
        state: Current connection state.
        requests_handled: Number of requests read on this connection.
        headers_sent: Whether the current response's head is on the wire.
    """

    socket: socket.socket
    address: Tuple[str, int]
    tls_context: Optional[ssl.SSLContext] = field(default=None, repr=False)

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0
    headers_sent: bool = False

    # From ServerConfig
    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_secure(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    # =========================================================================
    # TLS
    # =========================================================================

    def handshake(self) -> bool:
        """
        Wrap the socket in TLS and complete the handshake.

        Bounded by the connection timeout. Without a tls_context this is a
        no-op that succeeds.

        Returns:
            True on success, False if the client failed or abandoned the
            handshake (logged at DEBUG; one bad client is not an error).
        """
        if self.tls_context is None:
            return True

        self.state = ConnectionState.HANDSHAKE

        try:
            self.socket = self.tls_context.wrap_socket(
                self.socket,
                server_side=True,
                do_handshake_on_connect=False,
            )
            self.socket.do_handshake()
        except (ssl.SSLError, socket.timeout, OSError) as e:
            logger.debug(f"[{self.id}] TLS handshake failed with {self.client_ip}: {e}")
            return False

        self.last_activity = time.time()
        logger.debug(f"[{self.id}] TLS established: {self.socket.version()} {self.socket.cipher()[0]}")
        return True

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        Reads until the blank line ending the headers, then Content-Length
        more bytes. Bytes past the end of this request stay buffered for
        the next call (pipelining).

        Returns:
            The request bytes, or None if the client closed the connection
            or went quiet on a keep-alive connection.

        Raises:
            TimeoutError: If the first request does not arrive in time.
            HTTPParseError: If the request exceeds max_request_size (413).
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        # Later requests on a kept-alive connection get the shorter timeout.
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            # ─────────────────────────────────────────────────────────────
            # HEADERS
            # ─────────────────────────────────────────────────────────────
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None

                self._buffer += chunk
                self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            # ─────────────────────────────────────────────────────────────
            # BODY (rare for a static server, but must be consumed)
            # ─────────────────────────────────────────────────────────────
            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break

                self._buffer += chunk
                self._check_size()

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            self.socket.settimeout(self.timeout)

    def _check_size(self):
        if len(self._buffer) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(self._buffer)} bytes", status_code=413)

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError):
            return b""
        except ssl.SSLError as e:
            # Unexpected EOF and alerts from the client end the connection.
            logger.debug(f"[{self.id}] TLS read error: {e}")
            return b""

    def _parse_content_length(self, headers: bytes) -> int:
        """Content-Length from raw header bytes, 0 if absent or invalid."""
        try:
            for line in headers.decode("iso-8859-1").lower().split("\r\n"):
                if line.startswith("content-length:"):
                    return max(0, int(line.split(":", 1)[1].strip()))
        except (ValueError, IndexError):
            pass
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def begin_response(self):
        """Start a new response on this connection."""
        self.state = ConnectionState.PROCESSING
        self.headers_sent = False

    def send_head(self, data: bytes) -> bool:
        """
        Send the status line and headers of the current response.

        Raises:
            ProtocolViolation: If this response's head was already sent.

        Returns:
            True if sent, False if the client is gone.
        """
        if self.headers_sent:
            raise ProtocolViolation(f"[{self.id}] Response headers already sent")

        self.headers_sent = True
        return self._send(data)

    def send_chunk(self, data: bytes) -> bool:
        """Send body bytes. Returns False if the client is gone."""
        return self._send(data)

    def send_response(self, data: bytes) -> bool:
        """Send a complete serialized response (head and body) at once."""
        if self.headers_sent:
            raise ProtocolViolation(f"[{self.id}] Response headers already sent")

        self.headers_sent = True
        return self._send(data)

    def _send(self, data: bytes) -> bool:
        self.state = ConnectionState.WRITING

        try:
            self.socket.sendall(data)
            self.last_activity = time.time()
            return True
        except OSError as e:
            # ssl.SSLError is an OSError too.
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self):
        """Mark the connection as waiting for the next request."""
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection: FIN, drain briefly, release the descriptor.

        Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests ({self.age:.1f}s)")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
