"""
=============================================================================
PINGHTTP CLI ENTRY POINT
=============================================================================

    # Run with defaults (127.0.0.1:8080)
    python -m pinghttp

    # Custom port, all interfaces (containers)
    python -m pinghttp --host 0.0.0.0 --port 3000

    # Structured logs with the per-request access line
    python -m pinghttp --log-format json --log-level DEBUG

    # Same thing from the environment
    SERVER_ADDR=:3000 HTTP_LOG_LEVEL=debug python -m pinghttp

Configuration is read from the environment first (ServerConfig.from_env),
then any flag given on the command line overrides it.

Ctrl+C or SIGTERM stops the server and exits with status 0.

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig, LOG_FORMATS
from .lifecycle import LifecycleController
from .logging_config import setup_logging
from .server import start


logger = logging.getLogger("pinghttp")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pinghttp",
        description="Minimal HTTP/1.1 server answering /health and /",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m pinghttp                      # Run with defaults
  python -m pinghttp --port 3000          # Custom port
  python -m pinghttp --host 0.0.0.0       # Listen on all interfaces
  python -m pinghttp --port 0             # Let the OS pick a port
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 127.0.0.1, use 0.0.0.0 for containers)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 8080, 0 for any free port)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Log output format (default: text)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--drain-timeout",
        type=float,
        default=None,
        help="Seconds a graceful stop waits for in-flight requests (default: 5)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"pinghttp {__version__}"
    )

    return parser


def load_config(args: argparse.Namespace, environ=None) -> ServerConfig:
    """Environment first, then whichever flags were actually given."""
    config = ServerConfig.from_env(environ)

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format
    if args.drain_timeout is not None:
        config.drain_timeout = args.drain_timeout

    config.validate()
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run the server until SIGINT or SIGTERM.

    Returns:
        Process exit status: 0 after a signal-driven shutdown.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except ValueError as e:
        parser.error(str(e))

    setup_logging(config.log_level, config.log_format)

    # bind errors propagate: logged by SocketServer, nonzero exit
    handle = start(config)

    controller = LifecycleController(handle)
    controller.install()
    try:
        controller.wait()
    finally:
        controller.restore()

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
