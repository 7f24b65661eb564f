"""
Unit tests for access-log records.
"""

import json
import logging
import time

from httpsserver.access_log import RequestLog, log_request
from httpsserver.http.request import HTTPRequest
from httpsserver.http.response import HTTPStatus, not_found, text_response


def make_entry(**overrides) -> RequestLog:
    fields = dict(
        connection_id="abcd1234",
        method="GET",
        path="/index.html",
        query="",
        client_ip="127.0.0.1",
        user_agent="pytest",
        status_code=200,
        bytes_sent=1234,
        duration_ms=5.213,
        timestamp="19/Oct/2026:10:55:36 +0000",
    )
    fields.update(overrides)
    return RequestLog(**fields)


class TestRequestLog:

    def test_text_format(self):
        assert make_entry().to_text() == (
            '127.0.0.1 - - [19/Oct/2026:10:55:36 +0000] "GET /index.html" 200 1234 5.21ms'
        )

    def test_text_includes_query(self):
        assert '"GET /index.html?v=3"' in make_entry(query="v=3").to_text()

    def test_json_format(self):
        record = json.loads(make_entry().to_json())

        assert record["status_code"] == 200
        assert record["duration_ms"] == 5.21
        assert record["connection_id"] == "abcd1234"

    def test_create_from_request(self):
        request = HTTPRequest(
            method="HEAD", path="/a.html", query="x=1",
            headers={"user-agent": "curl/8"},
        )
        entry = RequestLog.create("c1", "10.0.0.1", request, not_found(), 9, time.perf_counter())

        assert entry.method == "HEAD"
        assert entry.query == "x=1"
        assert entry.user_agent == "curl/8"
        assert entry.status_code == 404
        assert entry.bytes_sent == 9
        assert entry.duration_ms >= 0

    def test_create_without_request(self):
        """Unparseable requests are still logged."""
        response = text_response(HTTPStatus.BAD_REQUEST, "Bad Request")
        entry = RequestLog.create("c1", "10.0.0.1", None, response, 11, time.perf_counter())

        assert entry.method == "-"
        assert entry.path == "-"
        assert entry.status_code == 400


class TestLogRequest:

    def test_success_at_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="httpsserver.access"):
            log_request(make_entry())

        assert caplog.records[-1].levelno == logging.INFO
        assert caplog.records[-1].name == "httpsserver.access"

    def test_server_error_at_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="httpsserver.access"):
            log_request(make_entry(status_code=500))

        assert caplog.records[-1].levelno == logging.WARNING

    def test_json_output(self, caplog):
        with caplog.at_level(logging.INFO, logger="httpsserver.access"):
            log_request(make_entry(), log_format="json")

        assert json.loads(caplog.records[-1].getMessage())["path"] == "/index.html"
