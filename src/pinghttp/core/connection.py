"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted, non-blocking client socket with the buffering the event
loop needs. The loop never blocks on a connection: it calls receive() when
the selector says the socket is readable and flush() when it is writable,
and each call moves as many bytes as the kernel will take right now.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Buffers                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   socket ──recv()──► _inbuf ──next_request()──► raw request bytes   │
    │                                                                      │
    │   response bytes ──queue()──► _outbuf ──flush()──send()──► socket   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FRAMING
=============================================================================

TCP delivers a byte stream, not messages. A request is complete when the
blank line after the headers has arrived and Content-Length more bytes
after it:

    GET / HTTP/1.1\r\n
    Host: x\r\n
    \r\n                   ← header_end
    <Content-Length bytes> ← request_end = header_end + 4 + length

Anything past request_end stays in _inbuf: it is the start of the next
pipelined request.

=============================================================================
CLOSING
=============================================================================

    close()   orderly: FIN to the peer, then release the descriptor
    abort()   SO_LINGER 0: the kernel drops unsent data and sends RST
              (forced shutdown)

=============================================================================
"""

import logging
import socket
import struct
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..http.request import HTTPParseError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Where a connection is in its life."""
    READING = "reading"      # waiting for (more of) a request
    WRITING = "writing"      # response bytes queued, not all sent
    CLOSED = "closed"        # descriptor released


@dataclass(eq=False)
class Connection:
    """
    A client connection owned by the event loop.

    Attributes:
        socket: The accepted client socket (switched to non-blocking).
        address: Peer (ip, port).
        id: Short identifier used in log lines.
        state: Current ConnectionState.
        created_at: time.monotonic() at accept.
        requests_handled: Requests framed so far on this connection.
        keep_alive: Set by the request handler after each request; False
                    means close once the queued response is written.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.READING
    created_at: float = field(default_factory=time.monotonic)
    requests_handled: int = 0
    keep_alive: bool = True

    buffer_size: int = 8192
    max_request_size: int = 1024 * 1024

    _inbuf: bytearray = field(default_factory=bytearray, repr=False)
    _outbuf: bytearray = field(default_factory=bytearray, repr=False)
    _close_after_write: bool = field(default=False, repr=False)

    def __post_init__(self):
        self.socket.setblocking(False)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def age(self) -> float:
        """Seconds since accept."""
        return time.monotonic() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    @property
    def has_pending_output(self) -> bool:
        return bool(self._outbuf)

    @property
    def has_partial_input(self) -> bool:
        """Bytes of a request that has not fully arrived yet."""
        return bool(self._inbuf)

    @property
    def is_idle(self) -> bool:
        """
        Nothing in flight: no request half-read and no response half-sent.

        Idle keep-alive connections are the ones a graceful stop may close
        straight away.
        """
        return not self._inbuf and not self._outbuf

    @property
    def close_after_write(self) -> bool:
        return self._close_after_write

    def fileno(self) -> int:
        return self.socket.fileno()

    # =========================================================================
    # READING
    # =========================================================================

    def receive(self) -> bool:
        """
        Read whatever the socket has into the input buffer.

        Returns:
            False when the peer has closed (EOF or reset), True otherwise.
        """
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (BlockingIOError, InterruptedError):
            return True
        except ConnectionResetError:
            logger.debug(f"[{self.id}] Reset by peer")
            return False

        if not chunk:
            return False

        self._inbuf += chunk
        return True

    def next_request(self) -> Optional[bytes]:
        """
        Cut one complete request off the front of the input buffer.

        Returns:
            The request bytes, or None if more data is needed.

        Raises:
            HTTPParseError: 413 when the request cannot fit in
                            max_request_size.
        """
        header_end = self._inbuf.find(b"\r\n\r\n")
        if header_end == -1:
            if len(self._inbuf) > self.max_request_size:
                raise HTTPParseError(
                    f"Request headers too large: {len(self._inbuf)} bytes",
                    status_code=413,
                )
            return None

        content_length = self._parse_content_length(bytes(self._inbuf[:header_end]))
        request_end = header_end + 4 + content_length

        if request_end > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {request_end} bytes",
                status_code=413,
            )

        if len(self._inbuf) < request_end:
            return None

        raw = bytes(self._inbuf[:request_end])
        del self._inbuf[:request_end]
        self.requests_handled += 1
        return raw

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        """
        Content-Length from raw header bytes, 0 when absent or unusable.

        A bad value frames the request as headers-only; the parser then
        rejects it with 400.
        """
        for line in headers.split(b"\r\n")[1:]:
            name, sep, value = line.partition(b":")
            if sep and name.strip().lower() == b"content-length":
                try:
                    return max(int(value.strip()), 0)
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def queue(self, data: bytes, close_after: bool = False) -> None:
        """
        Append response bytes to the output buffer.

        Args:
            data: Serialized response.
            close_after: Close once everything queued has been sent.
        """
        self._outbuf += data
        self.state = ConnectionState.WRITING
        if close_after:
            self._close_after_write = True

    def flush(self) -> bool:
        """
        Send as much of the output buffer as the socket accepts.

        Returns:
            True when the output buffer is empty.

        Raises:
            OSError: The peer went away mid-write (BrokenPipeError,
                     ConnectionResetError).
        """
        if self._outbuf:
            try:
                sent = self.socket.send(self._outbuf)
            except (BlockingIOError, InterruptedError):
                return False
            del self._outbuf[:sent]

        if self._outbuf:
            return False

        self.state = ConnectionState.READING
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """Orderly close. Safe to call more than once."""
        if self.is_closed:
            return

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # peer already gone

        self._release()
        logger.debug(f"[{self.id}] Closed after {self.requests_handled} requests")

    def abort(self) -> None:
        """Drop the connection with a TCP reset, discarding queued output."""
        if self.is_closed:
            return

        try:
            self.socket.setsockopt(
                socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0)
            )
        except OSError:
            pass  # descriptor already unusable; close() below still frees it

        self._outbuf.clear()
        self._release()
        logger.debug(f"[{self.id}] Aborted after {self.requests_handled} requests")

    def _release(self) -> None:
        self.socket.close()
        self.state = ConnectionState.CLOSED
