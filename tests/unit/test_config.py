"""
Unit tests for ServerConfig and the command line.
"""

import pytest

from httpsserver.__main__ import build_parser, main
from httpsserver.errors import StartupFailure
from httpsserver.server import HTTPSServer
from httpsserver.config import MIB, ServerConfig


class TestServerConfig:

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "localhost"
        assert config.port == 30000
        assert config.static_root == "public"
        assert config.chunk_size == 64 * 1024
        assert config.tls_minimum_version == "TLSv1.2"
        assert config.detect_content_type is False
        assert config.log_format == "text"
        config.validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PORT", "8443")
        monkeypatch.setenv("HOST", "0.0.0.0")
        monkeypatch.setenv("STATIC_ROOT", "/srv/site")
        monkeypatch.setenv("CACHE_MAX_BYTES", str(2 * MIB))
        monkeypatch.setenv("TLS_MIN_VERSION", "TLSv1.3")
        monkeypatch.setenv("LOG_FORMAT", "json")

        config = ServerConfig.from_env()

        assert config.port == 8443
        assert config.host == "0.0.0.0"
        assert config.static_root == "/srv/site"
        assert config.cache_max_bytes == 2 * MIB
        assert config.tls_minimum_version == "TLSv1.3"
        assert config.log_format == "json"

    def test_from_env_defaults(self, monkeypatch):
        for name in ("PORT", "HOST", "STATIC_ROOT", "WORKERS", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()
        assert (config.host, config.port) == ("localhost", 30000)

    def test_small_worker_count_from_env(self, monkeypatch):
        monkeypatch.setenv("WORKERS", "2")

        config = ServerConfig.from_env()

        assert config.max_workers == 2
        assert config.min_workers == 2
        config.validate()

    def test_non_numeric_port_rejected(self, monkeypatch):
        monkeypatch.setenv("PORT", "https")
        with pytest.raises(ValueError):
            ServerConfig.from_env()

    @pytest.mark.parametrize("overrides", [
        {"port": 70000},
        {"port": -1},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"queue_size": 0},
        {"buffer_size": 100},
        {"timeout": 0},
        {"chunk_size": 0},
        {"cache_max_bytes": -1},
        {"tls_minimum_version": "TLSv1.1"},
        {"log_format": "xml"},
    ])
    def test_validate_rejects(self, overrides: dict):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_port_zero_allowed(self):
        ServerConfig(port=0).validate()


class TestCommandLine:

    def test_defaults_come_from_config(self):
        args = build_parser(ServerConfig(port=1234, static_root="site")).parse_args([])

        assert args.port == 1234
        assert args.root == "site"
        assert args.tls_min_version == "TLSv1.2"

    def test_flags(self):
        args = build_parser(ServerConfig()).parse_args([
            "--host", "0.0.0.0",
            "--port", "8443",
            "--root", "./www",
            "--workers", "8",
            "--log-level", "debug",
            "--tls-min-version", "TLSv1.3",
            "--log-format", "json",
        ])

        assert args.host == "0.0.0.0"
        assert args.port == 8443
        assert args.root == "./www"
        assert args.workers == 8
        assert args.log_level == "DEBUG"
        assert args.tls_min_version == "TLSv1.3"
        assert args.log_format == "json"

    def test_invalid_tls_version(self):
        with pytest.raises(SystemExit):
            build_parser(ServerConfig()).parse_args(["--tls-min-version", "SSLv3"])

    def test_startup_failure_exits_1(self, monkeypatch, tmp_path):
        def fail(server):
            raise StartupFailure("Certificate generation failed")

        monkeypatch.setattr(HTTPSServer, "run", fail)

        assert main(["--root", str(tmp_path), "--port", "0"]) == 1

    def test_invalid_configuration_exits_2(self, tmp_path):
        assert main(["--root", str(tmp_path), "--port", "70000"]) == 2
