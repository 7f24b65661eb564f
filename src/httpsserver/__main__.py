"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

    # Serve ./public on https://localhost:30000
    python -m httpsserver

    # Other port and root
    python -m httpsserver --port 8443 --root ./site

    # Same thing through the environment
    PORT=8443 STATIC_ROOT=./site httpsserver

Every flag defaults to the environment-derived value (ServerConfig.from_env),
so flags override environment, which overrides built-in defaults.

Exit status:
    0   stopped normally (SIGINT / SIGTERM)
    1   startup failed (certificate, TLS context, or port unavailable)
    2   invalid configuration
=============================================================================
"""

import argparse
import logging
import sys
from dataclasses import replace

from . import __version__
from .config import LOG_FORMATS, TLS_VERSIONS, ServerConfig
from .errors import StartupFailure
from .server import HTTPSServer


logger = logging.getLogger("httpsserver")


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="httpsserver",
        description="HTTPS static file server with a self-signed certificate",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  httpsserver                          # https://localhost:30000, ./public
  httpsserver --port 8443 --root site  # Custom port and static root
  httpsserver --tls-min-version TLSv1.3
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})",
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})",
    )
    parser.add_argument(
        "--tls-min-version",
        choices=TLS_VERSIONS,
        default=defaults.tls_minimum_version,
        help=f"Lowest TLS version accepted (default: {defaults.tls_minimum_version})",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT AND PERFORMANCE
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--root", "-r",
        default=defaults.static_root,
        help=f"Directory to serve (default: {defaults.static_root})",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=defaults.max_workers,
        help=f"Maximum worker threads (default: {defaults.max_workers})",
    )
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level})",
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=defaults.log_format,
        help=f"Access log format (default: {defaults.log_format})",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"httpsserver {__version__}",
    )
    return parser


def main(argv=None) -> int:
    try:
        defaults = ServerConfig.from_env()
    except ValueError as e:
        print(f"Invalid environment: {e}", file=sys.stderr)
        return 2

    args = build_parser(defaults).parse_args(argv)

    config = replace(
        defaults,
        host=args.host,
        port=args.port,
        static_root=args.root,
        min_workers=min(defaults.min_workers, args.workers),
        max_workers=args.workers,
        log_level=args.log_level,
        log_format=args.log_format,
        tls_minimum_version=args.tls_min_version,
    )

    try:
        server = HTTPSServer(config)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except StartupFailure as e:
        logger.critical(f"Server failed to start: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
