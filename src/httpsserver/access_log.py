"""
=============================================================================
ACCESS LOG
=============================================================================

One line per response on the "httpsserver.access" logger, in a format
close to Apache's common log:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [19/Oct/2026:10:55:36 +0000] "GET /" 200 1234 5.21ms  │
    │ ─────────        ────────────────────────   ──────  ─── ──── ─────  │
    │ client IP        time the response ended    request  st  size time  │
    └─────────────────────────────────────────────────────────────────────┘

The access logger is separate from the module loggers so it can be routed
or silenced on its own:

    logging.getLogger("httpsserver.access").setLevel(logging.WARNING)

Size is the number of body bytes actually written, which for an aborted
stream is less than the Content-Length that was announced.
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional

from .http.request import HTTPRequest
from .http.response import HTTPResponse


logger = logging.getLogger("httpsserver.access")


@dataclass
class RequestLog:
    """
    One access-log entry.

    Attributes:
        connection_id: Connection identifier, shared by keep-alive requests.
        method: Request method ("-" when the request never parsed).
        path: Request path ("-" when the request never parsed).
        query: Raw query string.
        client_ip: Client address.
        user_agent: User-Agent header.
        status_code: Status sent.
        bytes_sent: Body bytes written.
        duration_ms: Time from request read to last byte written.
        timestamp: Completion time, Apache style.
    """
    connection_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    bytes_sent: int
    duration_ms: float
    timestamp: str

    @classmethod
    def create(
        cls,
        connection_id: str,
        client_ip: str,
        request: Optional[HTTPRequest],
        response: HTTPResponse,
        bytes_sent: int,
        started: float,
    ) -> "RequestLog":
        return cls(
            connection_id=connection_id,
            method=request.method if request else "-",
            path=request.path if request else "-",
            query=request.query if request else "",
            client_ip=client_ip,
            user_agent=request.user_agent if request else "",
            status_code=int(response.status),
            bytes_sent=bytes_sent,
            duration_ms=(time.perf_counter() - started) * 1000,
            timestamp=datetime.now(timezone.utc).strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

    def to_text(self) -> str:
        target = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {target}" {self.status_code} '
            f'{self.bytes_sent} {self.duration_ms:.2f}ms'
        )

    def to_json(self) -> str:
        record = asdict(self)
        record["duration_ms"] = round(self.duration_ms, 2)
        return json.dumps(record)


def log_request(entry: RequestLog, log_format: str = "text") -> None:
    """Emit an entry; 5xx at WARNING so failures stand out."""
    level = logging.WARNING if entry.status_code >= 500 else logging.INFO
    if not logger.isEnabledFor(level):
        return

    message = entry.to_json() if log_format == "json" else entry.to_text()
    logger.log(level, message)
