"""
Liveness endpoint.

GET /api/health answers 200 "OK" as long as the process can run a worker
thread and write a response. It deliberately checks nothing else: the
server has no dependencies that could be "down".
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, HTTPStatus, ResponseBuilder


HEALTH_PATH = "/api/health"


class HealthHandler:
    """Returns a fixed plain-text "OK"."""

    def __init__(self, message: str = "OK"):
        self.message = message

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        # Probes poll; nothing in between should cache the answer.
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .text(self.message)
            .header("Cache-Control", "no-store")
            .build())
