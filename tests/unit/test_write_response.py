"""
Unit tests for writing responses to a connection, including failures
before and after the status line is committed.
"""

import json
import logging
import socket
import time
from pathlib import Path

import pytest

from httpsserver.config import ServerConfig
from httpsserver.core import Connection
from httpsserver.http.request import HTTPRequest
from httpsserver.http.response import HTTPStatus, ResponseBuilder
from httpsserver.server import HTTPSServer


HSTS = "max-age=63072000; includeSubDomains; preload"


def failing_stream(chunks_before_failure):
    """Yield the given chunks, then fail like a disk read error would."""
    for chunk in chunks_before_failure:
        yield chunk
    raise OSError("Input/output error")


@pytest.fixture
def server(tmp_path: Path) -> HTTPSServer:
    return HTTPSServer(ServerConfig(static_root=str(tmp_path)), configure_logging=False)


@pytest.fixture
def pair():
    server_sock, client_sock = socket.socketpair()
    client_sock.settimeout(5.0)
    conn = Connection(socket=server_sock, address=("127.0.0.1", 50000), timeout=2.0)
    yield conn, client_sock
    conn.close()
    client_sock.close()


def receive_all(conn: Connection, client: socket.socket) -> bytes:
    """Close the server side and collect everything the client got."""
    conn.close()

    received = b""
    while True:
        data = client.recv(65536)
        if not data:
            break
        received += data
    return received


def streamed_route(server: HTTPSServer, path: str, chunks, length: int):
    def handler(request):
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type("text/html")
            .stream(chunks, length)
            .build())

    server.router.add_route(path, handler)


class TestWriteResponse:

    def test_buffered_response(self, server: HTTPSServer, pair):
        conn, client = pair
        request = HTTPRequest(method="GET", path="/api/health")
        response = server.router.handle(request)

        conn.begin_response()
        assert server._write_response(conn, request, response, time.perf_counter()) is True

        received = receive_all(conn, client)
        assert received.startswith(b"HTTP/1.1 200 OK\r\n")
        assert received.endswith(b"\r\n\r\nOK")

    def test_streamed_response(self, server: HTTPSServer, pair):
        conn, client = pair
        streamed_route(server, "/page", iter([b"<p>", b"", b"hi</p>"]), 9)
        request = HTTPRequest(method="GET", path="/page")
        response = server.router.handle(request)

        conn.begin_response()
        assert server._write_response(conn, request, response, time.perf_counter()) is True

        received = receive_all(conn, client)
        assert b"Content-Length: 9\r\n" in received
        assert received.endswith(b"\r\n\r\n<p>hi</p>")

    def test_head_sends_no_streamed_body(self, server: HTTPSServer, pair):
        conn, client = pair
        streamed_route(server, "/page", iter([b"<p>hi</p>"]), 9)
        request = HTTPRequest(method="HEAD", path="/page")
        response = server.router.handle(request)

        conn.begin_response()
        assert server._write_response(conn, request, response, time.perf_counter()) is True

        received = receive_all(conn, client)
        assert b"Content-Length: 9\r\n" in received
        assert received.endswith(b"\r\n\r\n")


class TestFailureBeforeCommit:

    def test_becomes_500(self, server: HTTPSServer, pair, caplog):
        conn, client = pair
        streamed_route(server, "/broken", failing_stream([]), 100)
        request = HTTPRequest(method="GET", path="/broken")
        response = server.router.handle(request)

        conn.begin_response()
        with caplog.at_level(logging.ERROR, logger="httpsserver.server"):
            written = server._write_response(conn, request, response, time.perf_counter())

        assert written is False

        received = receive_all(conn, client)
        assert received.startswith(b"HTTP/1.1 500 Internal Server Error\r\n")
        assert b"Content-Type: text/plain\r\n" in received
        assert b"Strict-Transport-Security: " + HSTS.encode() in received
        assert b"Connection: close\r\n" in received
        assert received.endswith(b"\r\n\r\nInternal Server Error")
        assert b"Input/output error" not in received
        assert "Failed before response was committed" in caplog.text

    def test_500_keeps_the_request_count(self, server: HTTPSServer, pair):
        """Requests counted in the meantime do not leak into the 500."""
        conn, client = pair
        streamed_route(server, "/broken", failing_stream([]), 100)
        request = HTTPRequest(method="GET", path="/broken")
        response = server.router.handle(request)          # count 1

        server.router.handle(HTTPRequest(method="GET", path="/api/health"))  # count 2

        conn.begin_response()
        server._write_response(conn, request, response, time.perf_counter())

        received = receive_all(conn, client)
        assert received.startswith(b"HTTP/1.1 500 ")
        assert b"X-Requests-Count: 1\r\n" in received
        assert server.counter.value() == 2


class TestFailureAfterCommit:

    def test_logged_and_closed(self, server: HTTPSServer, pair, caplog):
        conn, client = pair
        streamed_route(server, "/broken", failing_stream([b"abc", b"def"]), 100)
        request = HTTPRequest(method="GET", path="/broken")
        response = server.router.handle(request)

        conn.begin_response()
        with caplog.at_level(logging.ERROR, logger="httpsserver.server"):
            # A second status line would raise ProtocolViolation here.
            written = server._write_response(conn, request, response, time.perf_counter())

        assert written is False
        assert "Response aborted after 6 bytes of 100" in caplog.text

        received = receive_all(conn, client)
        assert received.count(b"HTTP/1.1 ") == 1
        assert received.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Content-Length: 100\r\n" in received
        assert received.endswith(b"\r\n\r\nabcdef")


class TestAccessLogFormat:

    def test_json_access_log(self, tmp_path: Path, pair, caplog):
        server = HTTPSServer(
            ServerConfig(static_root=str(tmp_path), log_format="json"),
            configure_logging=False,
        )
        conn, client = pair
        request = HTTPRequest(method="GET", path="/api/health")
        response = server.router.handle(request)

        conn.begin_response()
        with caplog.at_level(logging.INFO, logger="httpsserver.access"):
            server._write_response(conn, request, response, time.perf_counter())

        access = [r for r in caplog.records if r.name == "httpsserver.access"]
        record = json.loads(access[-1].getMessage())
        assert record["path"] == "/api/health"
        assert record["status_code"] == 200
        assert record["bytes_sent"] == 2
