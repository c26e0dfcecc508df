"""
=============================================================================
PINGHTTP - Minimal HTTP/1.1 Server on Raw Sockets
=============================================================================

A small HTTP server with a fixed route table, meant as a liveness target
and a base for experiments:

    any method  /health   → 200 "OK"
    any method  /         → 200 "hello world"
    anything else         → 404 "Not Found"

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    pinghttp/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m pinghttp)
    ├── server.py            # HTTPServer, ServerHandle, start()
    ├── lifecycle.py         # SIGINT/SIGTERM → stop
    ├── config.py            # ServerConfig dataclass
    ├── logging_config.py    # text / JSON log setup
    ├── core/                # Sockets
    │   ├── socket_server.py # selector event loop
    │   └── connection.py    # buffered client connection
    ├── http/                # Protocol
    │   ├── request.py       # request parsing
    │   ├── response.py      # response serialization
    │   ├── router.py        # exact-path routing
    │   └── status_codes.py  # HTTPStatus enum
    └── handlers/
        └── routes.py        # health_check, echo, ROUTES

=============================================================================
QUICK START
=============================================================================

    from pinghttp import start, ServerConfig

    handle = start(ServerConfig(port=0))
    print(handle.url)
    ...
    handle.stop(force=True)

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import HTTPServer, ServerHandle, start
from .lifecycle import LifecycleController, LifecycleState

__all__ = [
    "HTTPServer",
    "ServerHandle",
    "ServerConfig",
    "LifecycleController",
    "LifecycleState",
    "start",
    "__version__",
]
