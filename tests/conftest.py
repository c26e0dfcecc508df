"""
pytest configuration and fixtures.
"""

import http.client
import socket
from typing import Generator, Optional, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pinghttp import ServerConfig, ServerHandle, start


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /health?verbose=1 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b'{"name": "John"}'
    headers = (
        b"POST / HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    )
    return headers + body


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration on an OS-assigned port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        drain_timeout=2.0,
        log_level="WARNING",
    )


@pytest.fixture
def server(config: ServerConfig) -> Generator[ServerHandle, None, None]:
    """A running server with the built-in routes, force-stopped afterwards."""
    handle = start(config)
    yield handle
    handle.stop(force=True)


# =============================================================================
# CLIENT HELPERS
# =============================================================================

def fetch(
    handle: ServerHandle,
    method: str = "GET",
    path: str = "/",
    body: Optional[bytes] = None,
    headers: Optional[dict] = None,
) -> Tuple[int, dict, bytes]:
    """One request on a fresh connection. Returns (status, headers, body)."""
    host, port = handle.address
    conn = http.client.HTTPConnection(host, port, timeout=5)
    try:
        conn.request(method, path, body=body, headers=headers or {})
        response = conn.getresponse()
        return response.status, dict(response.getheaders()), response.read()
    finally:
        conn.close()


def raw_exchange(handle: ServerHandle, payload: bytes, timeout: float = 5.0) -> bytes:
    """Send raw bytes, read until the server closes, return everything read."""
    with socket.create_connection(handle.address, timeout=timeout) as sock:
        sock.sendall(payload)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def without_date(headers: dict) -> dict:
    """Response headers minus the ones that change per second."""
    return {name: value for name, value in headers.items() if name.lower() != "date"}
