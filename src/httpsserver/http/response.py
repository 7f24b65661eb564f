"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

HTTPResponse holds a status, headers, and either a buffered body or a
stream of body chunks. The connection writes it in two phases:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       RESPONSE ON THE WIRE                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   head_bytes()                                                       │
    │   ┌──────────────────────────────────────────────┐                  │
    │   │ HTTP/1.1 200 OK\r\n                           │  ◄── once sent,  │
    │   │ Content-Type: text/html\r\n                   │      the status  │
    │   │ Content-Length: 204800\r\n                    │      is final    │
    │   │ Strict-Transport-Security: ...\r\n            │                  │
    │   │ X-Requests-Count: 17\r\n                      │                  │
    │   │ \r\n                                          │                  │
    │   └──────────────────────────────────────────────┘                  │
    │                                                                      │
    │   body            one sendall(), or                                  │
    │   stream          64 KiB ─► 64 KiB ─► 64 KiB ─► 8 KiB               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

For a streamed body the Content-Length is the file size taken when the
file was opened. The stream guarantees it yields exactly that many bytes
or raises, so the length header is never a lie that the client can
mistake for a complete response.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Dict, Iterable, Optional, Union

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be written to a connection.

    Attributes:
        status: Status code.
        headers: Response headers (names as sent).
        body: Buffered body. Ignored when `stream` is set.
        stream: Iterable of body chunks, consumed exactly once.
        content_length: Length of the streamed body.
        version: HTTP version for the status line.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    stream: Optional[Iterable[bytes]] = field(default=None, repr=False)
    content_length: Optional[int] = None
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 404 Not Found"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def is_streaming(self) -> bool:
        return self.stream is not None

    @property
    def body_length(self) -> int:
        if self.is_streaming:
            return self.content_length or 0
        return len(self.body)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set a buffered body, encoding str as UTF-8."""
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def head_bytes(self, server_name: str = "httpsserver/1.0") -> bytes:
        """
        Serialize the status line and headers (including the blank line).

        Content-Length, Date and Server are added when missing.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(self.body_length)
        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def to_bytes(self, server_name: str = "httpsserver/1.0") -> bytes:
        """Serialize a buffered response in one piece."""
        if self.is_streaming:
            raise ValueError("Streaming responses are written chunk by chunk")
        return self.head_bytes(server_name) + self.body

    def close(self) -> None:
        """Release the stream's resources if it holds any."""
        close = getattr(self.stream, "close", None)
        if close is not None:
            close()


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

    Usage:
        response = (ResponseBuilder()
            .status(HTTPStatus.NOT_FOUND)
            .text("Not Found")
            .build())
    """

    def __init__(self):
        self._response = HTTPResponse()

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._response.status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._response.headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._response.headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._response.set_body(body)
        return self

    def text(self, text: str, content_type: str = "text/plain") -> "ResponseBuilder":
        """Plain-text body."""
        return self.content_type(content_type).body(text)

    def stream(self, chunks: Iterable[bytes], length: int) -> "ResponseBuilder":
        """Body delivered chunk by chunk; `length` becomes Content-Length."""
        self._response.stream = chunks
        self._response.content_length = length
        return self

    def build(self) -> HTTPResponse:
        return self._response


def format_http_date(dt: datetime) -> str:
    """RFC 7231 HTTP-date, e.g. "Wed, 15 Jun 2024 10:00:00 GMT"."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def text_response(status: HTTPStatus, message: str) -> HTTPResponse:
    """A text/plain response with the given status."""
    return ResponseBuilder().status(status).text(message).build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    return text_response(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return text_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
