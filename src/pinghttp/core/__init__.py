"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing underneath the HTTP layer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Creates, binds and listens on the TCP socket                     │
    │  • Runs one selector loop over the listener and every client        │
    │  • Accepts, reads, writes and closes without ever blocking          │
    │  • Forced or draining shutdown, triggered from any thread           │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one per accepted client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Input buffer: frames complete (and pipelined) requests           │
    │  • Output buffer: whatever send() could not take yet                │
    │  • close() with FIN, abort() with RST                               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer, RequestHandler
from .connection import Connection, ConnectionState

__all__ = [
    "SocketServer",     # Selector loop - accepts and services connections
    "RequestHandler",   # (Connection, raw bytes) -> response bytes
    "Connection",       # Buffered non-blocking client socket
    "ConnectionState",  # READING / WRITING / CLOSED
]
