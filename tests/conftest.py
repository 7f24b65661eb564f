"""
pytest configuration and fixtures.
"""

import http.client
import ssl
import sys
import threading
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httpsserver import HTTPSServer, ServerConfig
from httpsserver.tls import Certificate, CertificateProvider


INDEX_HTML = b"<!DOCTYPE html><html><body><h1>It works</h1></body></html>"


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /css/site.css?v=3 HTTP/1.1\r\n"
        b"Host: localhost:30000\r\n"
        b"User-Agent: pytest\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture(scope="session")
def certificate() -> Certificate:
    """One generated certificate shared by the whole run (RSA keygen is slow)."""
    return CertificateProvider().generate()


class FixedCertificateProvider(CertificateProvider):
    """Hands out a pre-generated certificate."""

    def __init__(self, certificate: Certificate):
        super().__init__()
        self._certificate = certificate

    def generate(self) -> Certificate:
        return self._certificate


@pytest.fixture
def certificate_provider(certificate: Certificate) -> CertificateProvider:
    return FixedCertificateProvider(certificate)


@pytest.fixture
def index_html() -> bytes:
    return INDEX_HTML


@pytest.fixture
def static_root(tmp_path: Path) -> Path:
    """A static root with an index page, a nested file and a 200 KiB file."""
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "css").mkdir()
    (root / "css" / "site.css").write_bytes(b"body { color: #333; }\n")
    (root / "big.bin").write_bytes(bytes(range(256)) * 800)
    (tmp_path / "secret.txt").write_bytes(b"outside the root")
    return root


@pytest.fixture
def client_context() -> ssl.SSLContext:
    """Client context that accepts the self-signed certificate."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class RunningServer:
    """An HTTPSServer running in a background thread."""

    def __init__(self, server: HTTPSServer, client_context: ssl.SSLContext):
        self.server = server
        self.client_context = client_context
        self._thread: threading.Thread = None

    @property
    def host(self) -> str:
        return self.server.address[0]

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=10.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def connection(self, timeout: float = 10.0) -> http.client.HTTPSConnection:
        return http.client.HTTPSConnection(
            self.host, self.port, timeout=timeout, context=self.client_context
        )

    def get(self, path: str, method: str = "GET"):
        """One request on a fresh connection. Returns (response, body)."""
        conn = self.connection()
        try:
            conn.request(method, path, headers={"Connection": "close"})
            response = conn.getresponse()
            body = response.read()
            return response, body
        finally:
            conn.close()


@pytest.fixture
def server_config(static_root: Path) -> ServerConfig:
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let the OS pick a free port
        static_root=str(static_root),
        min_workers=4,
        max_workers=16,
        timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def running_server(
    server_config: ServerConfig,
    certificate_provider: CertificateProvider,
    client_context: ssl.SSLContext,
) -> Generator[RunningServer, None, None]:
    """A live HTTPS server over the static_root fixture."""
    server = HTTPSServer(
        server_config,
        certificate_provider=certificate_provider,
        configure_logging=False,
    )
    running = RunningServer(server, client_context)
    running.start()

    yield running

    running.stop()
