"""
Unit tests for HTTP response building.
"""

from datetime import datetime, timezone

import pytest

from httpsserver.http.mime_types import get_mime_type
from httpsserver.http.response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    internal_error,
    not_found,
    text_response,
)
from httpsserver.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for HTTPResponse serialization."""

    def test_status_line(self):
        assert HTTPResponse(status=HTTPStatus.NOT_FOUND).status_line == "HTTP/1.1 404 Not Found"

    def test_to_bytes(self):
        response = text_response(HTTPStatus.OK, "hello")
        data = response.to_bytes("test/1.0")

        head, body = data.split(b"\r\n\r\n", 1)
        assert head.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Content-Type: text/plain" in head
        assert b"Content-Length: 5" in head
        assert b"Server: test/1.0" in head
        assert b"Date: " in head
        assert body == b"hello"

    def test_explicit_headers_not_overridden(self):
        response = text_response(HTTPStatus.OK, "hello")
        response.set_header("Server", "custom")

        assert b"Server: custom\r\n" in response.head_bytes("test/1.0")

    def test_streamed_content_length(self):
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .stream(iter([b"abc", b"def"]), 6)
            .build())

        assert response.is_streaming
        assert response.body_length == 6
        assert b"Content-Length: 6\r\n" in response.head_bytes()

    def test_streamed_response_has_no_single_serialization(self):
        response = ResponseBuilder().stream(iter([b"abc"]), 3).build()

        with pytest.raises(ValueError):
            response.to_bytes()

    def test_close_closes_stream(self):
        closed = []

        class Chunks:
            def __iter__(self):
                return iter([b"x"])

            def close(self):
                closed.append(True)

        ResponseBuilder().stream(Chunks(), 1).build().close()
        assert closed == [True]

    def test_close_without_stream(self):
        text_response(HTTPStatus.OK, "ok").close()


class TestResponseBuilder:
    """Tests for the fluent builder."""

    def test_text(self):
        response = ResponseBuilder().status(HTTPStatus.OK).text("hi").build()

        assert response.headers["Content-Type"] == "text/plain"
        assert response.body == b"hi"

    def test_body_encodes_str(self):
        response = ResponseBuilder().body("héllo").build()
        assert response.body == "héllo".encode("utf-8")

    def test_headers(self):
        response = (ResponseBuilder()
            .headers({"X-One": "1", "X-Two": "2"})
            .header("Connection", "close")
            .build())

        assert response.headers == {"X-One": "1", "X-Two": "2", "Connection": "close"}


class TestHelpers:

    def test_not_found(self):
        response = not_found()

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.headers["Content-Type"] == "text/plain"
        assert response.body == b"Not Found"

    def test_internal_error(self):
        response = internal_error()

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert response.headers["Content-Type"] == "text/plain"
        assert response.body == b"Internal Server Error"

    def test_format_http_date(self):
        dt = datetime(2024, 6, 15, 10, 0, 0, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Sat, 15 Jun 2024 10:00:00 GMT"


class TestMimeTypes:

    @pytest.mark.parametrize("path,expected", [
        ("index.html", "text/html"),
        ("/srv/public/STYLE.CSS", "text/css"),
        ("app.js", "text/javascript"),
        ("archive.unknownext", "application/octet-stream"),
        ("README", "application/octet-stream"),
    ])
    def test_lookup(self, path: str, expected: str):
        assert get_mime_type(path) == expected

    def test_custom_default(self):
        assert get_mime_type("file.xyz", default="text/html") == "text/html"


class TestHTTPStatus:

    def test_phrases(self):
        assert HTTPStatus.SERVICE_UNAVAILABLE.phrase == "Service Unavailable"
        assert HTTPStatus(505).phrase == "HTTP Version Not Supported"

    def test_classes(self):
        assert HTTPStatus.OK.is_success
        assert not HTTPStatus.OK.is_error
        assert HTTPStatus.NOT_FOUND.is_error
