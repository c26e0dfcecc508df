"""
=============================================================================
EVENT-DRIVEN TCP SOCKET SERVER
=============================================================================

One thread, one selector, every socket non-blocking. Instead of a thread
per connection, the loop asks the kernel which sockets are ready and does
a little work on each:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Event Loop                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   while True:                                                        │
    │       events = selector.select(timeout)                              │
    │       │                                                              │
    │       ├── listening socket readable  → accept() until EAGAIN         │
    │       │                                 register each client         │
    │       │                                                              │
    │       ├── client readable            → recv() into its buffer        │
    │       │                                 frame complete requests      │
    │       │                                 request_handler(conn, raw)   │
    │       │                                 queue the response bytes     │
    │       │                                                              │
    │       ├── client writable            → send() what the kernel takes  │
    │       │                                 close if Connection: close   │
    │       │                                                              │
    │       └── wakeup socket readable     → stop() was called             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Handlers never block, so a request is answered within the same pass that
framed it. Connections do not share anything except the read-only route
table, so there is no locking on the request path.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR   restart without waiting out TIME_WAIT on the port
TCP_NODELAY    (per client) send small responses without Nagle delay

=============================================================================
SHUTDOWN
=============================================================================

stop() may be called from any thread. It sets a flag and writes one byte
to a socketpair registered with the selector, which wakes select().

    forced     abort every connection (RST), close the listener, exit
    graceful   close the listener (new clients are refused), close
               idle keep-alive connections, keep serving the ones with
               a request in flight until they finish or drain_timeout
               expires, then exit

=============================================================================
ERROR BOUNDARY
=============================================================================

Anything raised while servicing one connection (a handler exception, a
reset mid-write) is caught here, logged as

    internal server error <message>

and that connection alone is aborted. The loop carries on.

=============================================================================
"""

import logging
import selectors
import socket
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from ..config import ServerConfig
from ..http.request import HTTPParseError
from ..http.response import error_response
from .connection import Connection


logger = logging.getLogger(__name__)


# Request handler: framed request bytes in, serialized response bytes out.
# It may set conn.keep_alive = False to close after the response.
RequestHandler = Callable[[Connection, bytes], bytes]

# selector key.data markers for the two non-client sockets
_ACCEPT = object()
_WAKEUP = object()


class SocketServer:
    """
    Non-blocking TCP server driving Connection objects from one selector.

    Usage:
        server = SocketServer(config, request_handler)
        server.bind()             # raises OSError if the port is taken
        server.serve_forever()    # blocks until shutdown() from elsewhere
    """

    def __init__(self, config: ServerConfig, request_handler: RequestHandler):
        """
        Args:
            config: Bind address, backlog, buffer sizes, drain timeout.
            request_handler: Called once per complete request.
        """
        self.config = config
        self._request_handler = request_handler

        self._socket: Optional[socket.socket] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._wakeup_r: Optional[socket.socket] = None
        self._wakeup_w: Optional[socket.socket] = None
        self._address: Optional[Tuple[str, int]] = None

        # owned by the loop thread
        self._connections: Dict[str, Connection] = {}
        self._accepting = False
        self._draining = False

        # shared with stop() callers
        self._lock = threading.Lock()
        self._stop_requested = False
        self._force = False
        self._stopped = threading.Event()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def address(self) -> Tuple[str, int]:
        """The (host, port) actually bound; the real port when config.port is 0."""
        if self._address is None:
            raise RuntimeError("Socket server is not bound")
        return self._address

    @property
    def is_draining(self) -> bool:
        """True once a graceful stop has begun."""
        return self._draining

    # =========================================================================
    # SETUP
    # =========================================================================

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen on the server socket.

        Returns:
            The bound (host, port).

        Raises:
            OSError: Address in use, permission denied, bad host.
        """
        sock = self._create_socket()

        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            sock.close()
            raise

        sock.setblocking(False)
        self._socket = sock
        self._address = sock.getsockname()[:2]

        self._wakeup_r, self._wakeup_w = socket.socketpair()
        self._wakeup_r.setblocking(False)
        self._wakeup_w.setblocking(False)

        self._selector = selectors.DefaultSelector()
        self._selector.register(self._socket, selectors.EVENT_READ, _ACCEPT)
        self._selector.register(self._wakeup_r, selectors.EVENT_READ, _WAKEUP)
        self._accepting = True

        host, port = self._address
        logger.debug(f"Socket bound on {host}:{port} (backlog {self.config.backlog})")
        return self._address

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def serve_forever(self) -> None:
        """
        Run the event loop until shutdown() is called.

        Raises:
            RuntimeError: bind() has not been called.
        """
        if self._selector is None:
            raise RuntimeError("bind() must be called before serve_forever()")

        try:
            self._loop()
        finally:
            self._cleanup()
            self._stopped.set()

    def _loop(self) -> None:
        drain_deadline: Optional[float] = None

        while True:
            with self._lock:
                stop_requested, force = self._stop_requested, self._force

            timeout: Optional[float] = None

            if stop_requested:
                if force:
                    self._abort_all()
                    return

                if drain_deadline is None:
                    drain_deadline = time.monotonic() + self.config.drain_timeout
                    self._begin_drain()

                self._close_idle()
                if not self._connections:
                    return

                timeout = drain_deadline - time.monotonic()
                if timeout <= 0:
                    logger.warning(
                        f"Drain timeout after {self.config.drain_timeout}s, "
                        f"aborting {len(self._connections)} connection(s)"
                    )
                    self._abort_all()
                    return

            for key, mask in self._selector.select(timeout):
                if key.data is _WAKEUP:
                    self._consume_wakeup()
                elif key.data is _ACCEPT:
                    self._accept()
                else:
                    self._service(key.data, mask)

    # =========================================================================
    # ACCEPT
    # =========================================================================

    def _accept(self) -> None:
        """Accept every pending connection (the listener is non-blocking)."""
        while self._accepting:
            try:
                client_socket, client_address = self._socket.accept()
            except (BlockingIOError, InterruptedError):
                return
            except OSError as e:
                logger.error(f"Accept error: {e}")
                return

            client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                max_request_size=self.config.max_request_size,
            )
            self._connections[conn.id] = conn
            self._selector.register(client_socket, selectors.EVENT_READ, conn)

            logger.debug(f"[{conn.id}] Accepted {conn.client_ip}:{conn.address[1]}")

    # =========================================================================
    # PER-CONNECTION WORK
    # =========================================================================

    def _service(self, conn: Connection, mask: int) -> None:
        """Handle one readiness event; the error boundary for a connection."""
        if conn.is_closed:
            return

        try:
            if mask & selectors.EVENT_READ and not conn.close_after_write:
                if not conn.receive():
                    self._on_peer_closed(conn)
                    return
                self._process_input(conn)

            if conn.has_pending_output or mask & selectors.EVENT_WRITE:
                self._write(conn)
            else:
                self._update_interest(conn)
        except Exception as e:
            logger.exception(f"internal server error {e}")
            self._drop(conn)

    def _process_input(self, conn: Connection) -> None:
        """Answer every complete request sitting in the input buffer."""
        while not conn.close_after_write:
            try:
                raw = conn.next_request()
                if raw is None:
                    return
                data = self._request_handler(conn, raw)
            except HTTPParseError as e:
                logger.debug(f"[{conn.id}] Rejected request ({e.status_code}): {e}")
                response = error_response(e.status_code, str(e))
                conn.queue(response.to_bytes(self.config.server_name), close_after=True)
                return

            conn.queue(data, close_after=not conn.keep_alive)

    def _write(self, conn: Connection) -> None:
        if conn.flush() and conn.close_after_write:
            self._close(conn)
            return
        self._update_interest(conn)

    def _on_peer_closed(self, conn: Connection) -> None:
        """EOF from the client: finish sending what is queued, then close."""
        if conn.has_pending_output:
            conn.queue(b"", close_after=True)
            self._update_interest(conn)
        else:
            self._close(conn)

    def _update_interest(self, conn: Connection) -> None:
        """Register for writes only while output is pending."""
        if conn.is_closed:
            return

        if conn.has_pending_output:
            events = selectors.EVENT_WRITE
            if not conn.close_after_write:
                events |= selectors.EVENT_READ
        else:
            events = selectors.EVENT_READ

        if self._selector.get_key(conn.socket).events != events:
            self._selector.modify(conn.socket, events, conn)

    # =========================================================================
    # CLOSING CONNECTIONS
    # =========================================================================

    def _forget(self, conn: Connection) -> None:
        self._connections.pop(conn.id, None)
        if not conn.is_closed:
            self._selector.unregister(conn.socket)

    def _close(self, conn: Connection) -> None:
        self._forget(conn)
        conn.close()

    def _drop(self, conn: Connection) -> None:
        if conn.is_closed:
            self._connections.pop(conn.id, None)
            return
        self._forget(conn)
        conn.abort()

    def _abort_all(self) -> None:
        for conn in list(self._connections.values()):
            self._drop(conn)

    def _close_idle(self) -> None:
        for conn in list(self._connections.values()):
            if conn.is_idle:
                self._close(conn)

    def _begin_drain(self) -> None:
        """Close the listener; in-flight requests keep going."""
        self._draining = True
        self._close_listener()
        logger.info(f"Draining {len(self._connections)} connection(s)")

    def _close_listener(self) -> None:
        """Unregister and close the listening socket; connects are refused after this."""
        if self._accepting:
            self._selector.unregister(self._socket)
            self._accepting = False

        if self._socket is not None:
            self._socket.close()
            self._socket = None

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self, force: bool = False) -> None:
        """
        Ask the loop to stop. Returns immediately; see wait_for_shutdown().

        Safe from any thread and safe to call repeatedly. A forced call
        after a graceful one upgrades the stop to forced.

        Args:
            force: Abort open connections instead of draining them.
        """
        with self._lock:
            if self._stop_requested and (self._force or not force):
                return
            self._stop_requested = True
            self._force = self._force or force

        logger.info(f"Shutting down socket server ({'forced' if force else 'graceful'})")
        self._wake()

    def _wake(self) -> None:
        if self._wakeup_w is None:
            return
        try:
            self._wakeup_w.send(b"\0")
        except (BlockingIOError, OSError):
            # buffer full: a wakeup is already pending; closed: loop is done
            pass

    def _consume_wakeup(self) -> None:
        try:
            while self._wakeup_r.recv(64):
                pass
        except (BlockingIOError, InterruptedError):
            pass

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the loop has exited.

        Returns:
            True if it has, False on timeout.
        """
        return self._stopped.wait(timeout)

    def _cleanup(self) -> None:
        """Release every socket and the selector."""
        self._abort_all()
        self._close_listener()

        self._selector.close()

        with self._lock:
            wakeup_r, wakeup_w = self._wakeup_r, self._wakeup_w
            self._wakeup_w = None
        wakeup_r.close()
        wakeup_w.close()

        logger.info("Socket server stopped")
