"""
=============================================================================
HTTP STATUS CODES
=============================================================================

Only the codes this server can actually send. The static file server has
a small vocabulary:

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  200   │ File (or health check) served                             │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  400   │ Request could not be parsed                               │
    │  404   │ No such file under the static root                        │
    │  408   │ Client connected but never finished its request           │
    │  413   │ Request headers larger than max_request_size              │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  500   │ Unexpected failure before the response was committed      │
    │  503   │ Worker queue full                                         │
    │  505   │ Not HTTP/1.0 or HTTP/1.1                                  │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes with reason phrases.

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200

    BAD_REQUEST = 400
    NOT_FOUND = 404
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line, e.g. "Not Found"."""
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_error(self) -> bool:
        """4xx or 5xx."""
        return self >= 400


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
