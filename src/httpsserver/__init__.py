"""
=============================================================================
HTTPSSERVER - Self-signed HTTPS static file server
=============================================================================

Serves a directory over HTTPS with a certificate generated at startup.
Every response carries Strict-Transport-Security and an X-Requests-Count
header with the process-wide request count.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    httpsserver/
    ├── __main__.py          # CLI (python -m httpsserver)
    ├── server.py            # HTTPSServer: wiring and per-connection flow
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # StartupFailure, NotFound, FileReadError, ...
    ├── router.py            # RequestRouter: counting, HSTS, dispatch
    ├── counter.py           # RequestCounter (uint32, wrapping)
    ├── access_log.py        # One line per response
    ├── tls/
    │   ├── certificate.py   # Self-signed RSA certificate generation
    │   └── context.py       # ssl.SSLContext from the generated material
    ├── files/
    │   ├── accessor.py      # Root-confined file access, chunked streams
    │   └── cache.py         # Weakly held file contents
    ├── core/
    │   ├── socket_server.py # Listener and accept loop
    │   ├── connection.py    # TLS handshake, request reads, response writes
    │   └── thread_pool.py   # Worker threads
    ├── http/
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Buffered and streamed responses
    │   ├── status_codes.py
    │   └── mime_types.py
    └── handlers/
        ├── static.py        # Cache, stream, or 404
        └── health.py        # /api/health

=============================================================================
QUICK START
=============================================================================

    from httpsserver import HTTPSServer, ServerConfig

    HTTPSServer(ServerConfig(static_root="public")).run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import HTTPSServer, ServerEvent, create_app

__all__ = ["HTTPSServer", "ServerConfig", "ServerEvent", "create_app", "__version__"]
