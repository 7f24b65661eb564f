"""
HTTP/1.1 message handling: request parsing, response building, status
codes and MIME types. Routing lives one level up in httpsserver.router.
"""

from .mime_types import DEFAULT_MIME_TYPE, get_mime_type
from .request import HTTPParseError, HTTPRequest, RequestParser
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    internal_error,
    not_found,
    text_response,
)
from .status_codes import HTTPStatus

__all__ = [
    "DEFAULT_MIME_TYPE",
    "get_mime_type",
    "HTTPParseError",
    "HTTPRequest",
    "RequestParser",
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "internal_error",
    "not_found",
    "text_response",
    "HTTPStatus",
]
