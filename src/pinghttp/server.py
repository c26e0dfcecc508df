"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the pieces together: configuration, the socket event loop, the
request parser and the router.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    HTTP SERVER ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   HTTPServer    │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │ SocketServer │    │RequestParser │    │    Router    │        │
    │    │ (event loop) │    │ (bytes→req)  │    │ (path→func)  │        │
    │    └──────┬───────┘    └──────────────┘    └──────┬───────┘        │
    │           ▼                                       ▼                 │
    │    ┌──────────────┐                        ┌──────────────┐        │
    │    │  Connection  │                        │   Handlers   │        │
    │    └──────────────┘                        └──────────────┘        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. start()
       └── bind + listen (synchronously, so a taken port raises here)
       └── event loop on a background thread

    2. CLIENT SENDS BYTES
       └── Connection frames one complete request

    3. PARSE
       └── RequestParser → HTTPRequest (or HTTPParseError → 4xx, close)

    4. DISPATCH
       └── Router: exact path match → handler, else 404

    5. CONNECTION HEADER
       └── keep-alive or close, from the request version and headers

    6. SERIALIZE
       └── HEAD drops the body, everything else sends it

    7. stop(force)
       └── forced: RST every connection
       └── graceful: finish in-flight requests, then close

=============================================================================
"""

import logging
import threading
import time
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection
from .handlers import default_router
from .http import RequestParser, Router


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("pinghttp.access")


class ServerHandle:
    """
    A running server, as returned by start().

    Usage:
        handle = start(ServerConfig(port=0))
        print(handle.url)           # http://127.0.0.1:54321/
        handle.stop(force=True)     # returns once the socket is closed
    """

    def __init__(self, server: "HTTPServer"):
        self._server = server

    @property
    def address(self) -> tuple[str, int]:
        """(host, port) actually bound."""
        return self._server.address

    @property
    def url(self) -> str:
        host, port = self.address
        return f"http://{host}:{port}/"

    @property
    def running(self) -> bool:
        return self._server.is_running

    def stop(self, force: bool = False) -> None:
        """See HTTPServer.stop()."""
        self._server.stop(force)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the server has stopped.

        Returns:
            True if it has, False on timeout.
        """
        return self._server.wait(timeout)

    def __repr__(self) -> str:
        state = "running" if self.running else "stopped"
        return f"<ServerHandle {self.url} {state}>"


class HTTPServer:
    """
    HTTP/1.1 server with a fixed route table.

    =========================================================================
    USAGE
    =========================================================================

        server = HTTPServer(ServerConfig(port=8080))
        handle = server.start()       # non-blocking
        ...
        handle.stop(force=True)

    A custom route table replaces the built-in one:

        HTTPServer(router=Router({"/ping": ping}))

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        router: Optional[Router] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults apply when omitted.
            router: Route table. The /health + / table when omitted.

        Raises:
            ValueError: The configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._router = router if router is not None else default_router()
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._socket_server = SocketServer(self.config, self._handle_request)

        self._thread: Optional[threading.Thread] = None
        self._handle: Optional[ServerHandle] = None

    @property
    def router(self) -> Router:
        return self._router

    @property
    def address(self) -> tuple[str, int]:
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> ServerHandle:
        """
        Bind, listen and start serving in the background.

        Returns:
            A ServerHandle for the running server.

        Raises:
            OSError: The address could not be bound.
            RuntimeError: Already started.
        """
        if self._thread is not None:
            raise RuntimeError("Server already started")

        self._socket_server.bind()

        self._thread = threading.Thread(
            target=self._socket_server.serve_forever,
            name="pinghttp-loop",
            daemon=True,
        )
        self._thread.start()

        self._handle = ServerHandle(self)
        logger.info(f"http/1 server listening at: {self._handle.url}")
        for line in self._router.describe():
            logger.debug(f"route {line}")

        return self._handle

    def stop(self, force: bool = False) -> None:
        """
        Stop the server and wait for the event loop to exit.

        Idempotent: later calls return at once (a forced call after a
        graceful one still escalates).

        Args:
            force: True aborts every connection now. False stops accepting,
                   lets in-flight requests finish for up to
                   config.drain_timeout seconds, then aborts the rest.
        """
        if self._thread is None:
            return

        self._socket_server.shutdown(force)

        # a handler calling stop() runs on the loop thread itself
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the event loop has exited."""
        if self._thread is None:
            return True
        return self._socket_server.wait_for_shutdown(timeout)

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _handle_request(self, conn: Connection, raw: bytes) -> bytes:
        """
        Turn one framed request into response bytes.

        Called on the loop thread. Parse errors become an error response
        and close the connection; handler exceptions propagate to the
        loop, which logs them and drops the connection.
        """
        started = time.monotonic()

        request = self._parser.parse(raw, conn.address)
        response = self._router.dispatch(request)

        keep_alive = (
            self.config.keep_alive
            and request.is_keep_alive
            and not self._socket_server.is_draining
        )
        conn.keep_alive = keep_alive
        response = response.with_header("Connection", "keep-alive" if keep_alive else "close")

        data = response.to_bytes(
            self.config.server_name,
            include_body=request.method != "HEAD",
        )

        if access_logger.isEnabledFor(logging.DEBUG):
            elapsed_ms = (time.monotonic() - started) * 1000
            access_logger.debug(
                f'{conn.client_ip} "{request.method} {request.path}" '
                f"{int(response.status)} {len(data)} {elapsed_ms:.1f}ms"
            )

        return data


def start(
    config: Optional[ServerConfig] = None,
    router: Optional[Router] = None,
) -> ServerHandle:
    """
    Start a server and return its handle.

        handle = start(ServerConfig(port=0))
        handle.address          # ("127.0.0.1", 54321)
        handle.stop(force=True)

    Raises:
        OSError: The address could not be bound.
        ValueError: The configuration is invalid.
    """
    return HTTPServer(config, router).start()
