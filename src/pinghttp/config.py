"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Everything tunable about the server lives in one dataclass.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION SOURCES                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m pinghttp --port 3000                            │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HTTP_PORT=3000 python -m pinghttp                         │
    │      └── SERVER_ADDR=:3000 python -m pinghttp                      │
    │                                                                      │
    │   3. Defaults (this dataclass)                                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

None of the environment variables are required: with nothing set the
server binds 127.0.0.1:8080 and logs text at INFO.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from . import __version__


LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server.

    Development:
        ServerConfig(port=0, log_level="DEBUG")     # ephemeral port

    Container:
        ServerConfig(host="0.0.0.0", port=8080, log_format="json")
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" for every interface."""

    port: int = 8080
    """Port to bind. 0 asks the OS for a free one; see ServerHandle.address."""

    backlog: int = 128
    """Pending-connection queue length passed to listen()."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    max_request_size: int = 1024 * 1024
    """Largest request (headers + body) accepted; bigger ones get 413."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    """Allow persistent connections. False closes after every response."""

    server_name: str = f"pinghttp/{__version__}"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # SHUTDOWN
    # ─────────────────────────────────────────────────────────────────────

    drain_timeout: float = 5.0
    """
    Seconds a non-forced stop() waits for in-flight requests before
    aborting what is left. A forced stop() ignores it.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR. DEBUG adds the per-request access log."""

    log_format: str = "text"
    """"text" for humans, "json" for log shippers (one object per line)."""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Build a configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        HTTP_HOST           Bind address (default: 127.0.0.1)
        HTTP_PORT           Bind port (default: 8080)
        SERVER_ADDR         "host:port" or ":port"; overrides the two above
        HTTP_LOG_LEVEL      Log level (default: INFO)
        HTTP_LOG_FORMAT     text | json (default: text)
        HTTP_DRAIN_TIMEOUT  Graceful stop bound in seconds (default: 5)

        =====================================================================

        Args:
            environ: Mapping to read instead of os.environ (tests).

        Raises:
            ValueError: A numeric variable does not parse.
        """
        env = os.environ if environ is None else environ

        host = env.get("HTTP_HOST", cls.host)
        port = int(env.get("HTTP_PORT", str(cls.port)))

        server_addr = env.get("SERVER_ADDR")
        if server_addr:
            host, port = parse_address(server_addr)

        return cls(
            host=host,
            port=port,
            log_level=env.get("HTTP_LOG_LEVEL", cls.log_level),
            log_format=env.get("HTTP_LOG_FORMAT", cls.log_format),
            drain_timeout=float(env.get("HTTP_DRAIN_TIMEOUT", str(cls.drain_timeout))),
        )

    def validate(self) -> None:
        """
        Reject impossible values before anything is bound.

        Raises:
            ValueError: Describing the first bad field.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_request_size < self.buffer_size:
            raise ValueError("max_request_size must be >= buffer_size")

        if self.drain_timeout < 0:
            raise ValueError("drain_timeout must be >= 0")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"log_format must be one of {', '.join(LOG_FORMATS)}, got {self.log_format!r}"
            )


def parse_address(addr: str) -> tuple[str, int]:
    """
    Split "host:port" into its parts.

        parse_address("127.0.0.1:9000")  → ("127.0.0.1", 9000)
        parse_address(":9000")           → ("0.0.0.0", 9000)

    Raises:
        ValueError: No port, or a port that is not a number.
    """
    host, sep, port = addr.rpartition(":")
    if not sep or not port:
        raise ValueError(f"Address must be host:port or :port, got {addr!r}")

    try:
        port_number = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in address {addr!r}") from None

    return host or "0.0.0.0", port_number
