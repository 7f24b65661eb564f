"""
=============================================================================
REQUEST ROUTER
=============================================================================

The composition root of request handling. Every parsed request passes
through RequestRouter.handle(), which is the only place that touches the
request counter and the only place that decides which handler answers.

=============================================================================
PER-REQUEST STATE MACHINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Received                                                           │
    │      │  counter.increment()                                          │
    │      ▼                                                               │
    │   CountedAndHeadered ─────────────────────────────┐                 │
    │      │                                             │ exception       │
    │      ├──► /api/health ──► 200 "OK"                │                 │
    │      ├──► CacheHit    ──► 200 cached bytes        ▼                 │
    │      ├──► Streaming   ──► 200 chunks ...        Failed ──► 500      │
    │      └──► NotFound    ──► 404 "Not Found"                           │
    │                │                                                     │
    │                ▼                                                     │
    │            Completed                                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every response leaving handle() carries Strict-Transport-Security and
X-Requests-Count, whatever the outcome. A failure while a streamed body
is already on the wire cannot become a 500 any more; the connection
layer handles that case by logging and closing.

=============================================================================
"""

import logging
from typing import Callable, Dict, Optional

from .counter import RequestCounter
from .http.request import HTTPRequest
from .http.response import HTTPResponse, HTTPStatus, internal_error, not_found, text_response


logger = logging.getLogger(__name__)


HSTS_HEADER = "Strict-Transport-Security"
HSTS_VALUE = "max-age=63072000; includeSubDomains; preload"
COUNT_HEADER = "X-Requests-Count"

Handler = Callable[[HTTPRequest], HTTPResponse]


class RequestRouter:
    """
    Dispatches requests to handlers and stamps the common headers.

    Exact-path routes are checked first (e.g. /api/health); everything
    else goes to the fallback handler, normally the static file handler.
    There is no method dispatch: every method is handled like GET.

    Usage:
        router = RequestRouter(RequestCounter(), fallback=static.handle)
        router.add_route("/api/health", health.handle)

        response = router.handle(request)
    """

    def __init__(self, counter: RequestCounter, fallback: Optional[Handler] = None):
        self.counter = counter
        self._fallback: Handler = fallback or (lambda request: not_found())
        self._routes: Dict[str, Handler] = {}

    def add_route(self, path: str, handler: Handler) -> None:
        """Register a handler for one exact path."""
        self._routes[path] = handler
        logger.debug(f"Registered route: {path} → {getattr(handler, '__qualname__', handler)}")

    def route(self, path: str) -> Callable[[Handler], Handler]:
        """
        Decorator form of add_route().

            @router.route("/api/health")
            def health(request):
                return text_response(HTTPStatus.OK, "OK")
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler)
            return handler
        return decorator

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Handle one request.

        Never raises: unexpected errors become a 500 with a fixed body.
        The detail is logged, never sent.
        """
        # ─────────────────────────────────────────────────────────────────
        # COUNT FIRST
        # ─────────────────────────────────────────────────────────────────
        # The value returned by increment() is this request's own count,
        # unaffected by concurrent requests incrementing after it.
        count = self.counter.increment()

        handler = self._routes.get(request.path, self._fallback)

        try:
            response = handler(request)
        except Exception:
            logger.exception(f"Error serving {request.method} {request.path}")
            response = internal_error()

        return self._stamp(response, count)

    def error_response(self, status: HTTPStatus, message: str, count: Optional[int] = None) -> HTTPResponse:
        """
        A plain-text error that does not go through handle().

        Used for unparseable requests, timeouts and overload. The counter
        is never incremented here, but the common headers are still present.

        Args:
            count: X-Requests-Count of a request that was already counted
                and whose response is being replaced. Without it the
                current counter value is used.
        """
        if count is None:
            count = self.counter.value()
        return self._stamp(text_response(status, message), count)

    def _stamp(self, response: HTTPResponse, count: int) -> HTTPResponse:
        response.set_header(HSTS_HEADER, HSTS_VALUE)
        response.set_header(COUNT_HEADER, str(count))
        return response
