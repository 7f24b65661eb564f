"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.x request bytes (already decrypted by TLS) into
HTTPRequest objects.

=============================================================================
WHAT THIS SERVER NEEDS FROM A REQUEST
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    GET /css/site.css?v=3 HTTP/1.1\r\n                                │
    │    ─┬─ ──────┬────── ─┬─  ────┬───                                   │
    │     │        │        │       │                                      │
    │   method    path    query   version  → keep-alive default           │
    │   (any      (URL-   (kept                                            │
    │   token)    decoded) for logs)                                       │
    │                                                                      │
    │    Host: localhost:30000\r\n                                         │
    │    Connection: keep-alive\r\n     → headers, lowercase keys          │
    │    \r\n                                                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The server is GET-only in behaviour but does not dispatch on method:
any syntactically valid method token is accepted and treated like GET.
Path traversal is not rejected here; the file accessor owns that check
because it is the one that knows where the root is.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict
from urllib.parse import parse_qs, unquote, urlsplit


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code to answer with:

        400 Bad Request                 - Malformed request syntax
        413 Payload Too Large           - Request exceeds size limit
        505 HTTP Version Not Supported  - Not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method: Request method exactly as sent ("GET", "HEAD", ...).
        path: URL-decoded path without the query string.
        version: "HTTP/1.0" or "HTTP/1.1".
        headers: Header values keyed by lowercase name.
        query: Raw query string, "" if absent.
        query_params: Parsed query string (name → list of values).
        body: Request body, if any (ignored by the server).
        client_address: (ip, port) of the client.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query: str = ""
    query_params: Dict[str, list] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple = ("", 0)

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Should the connection stay open after this response?

        HTTP/1.1 keeps alive unless "Connection: close".
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    Usage:
        parser = RequestParser(max_request_size=1024 * 1024)
        request = parser.parse(raw_bytes, ("127.0.0.1", 51234))
    """

    # METHOD SP REQUEST-TARGET SP HTTP-VERSION
    # Method is an RFC 7230 token; we do not restrict it to a known list.
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) (\S+) (HTTP/\d\.\d)$"
    )

    HEADER_PATTERN = re.compile(r"^([^:\s]+):(.*)$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple = ("", 0)) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: One complete request as read by Connection.read_request().
            client_address: Client's (ip, port) for logging.

        Returns:
            The parsed request.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        # ─────────────────────────────────────────────────────────────────
        # SIZE LIMIT
        # ─────────────────────────────────────────────────────────────────
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        # ─────────────────────────────────────────────────────────────────
        # SPLIT HEADERS / BODY
        # ─────────────────────────────────────────────────────────────────
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")

        method, path, query, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length")

        if content_length < 0 or len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query=query,
            query_params=parse_qs(query, keep_blank_values=True),
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        # Absolute-form targets ("https://host/path") are accepted too.
        parsed = urlsplit(target)
        path = unquote(parsed.path) or "/"

        return method, path, parsed.query, version

    def _parse_headers(self, lines: list) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Repeated headers are joined with ", " (RFC 7230 §3.2.2).
        Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name = match.group(1).lower()
            value = match.group(2).strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

