"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns one framed HTTP/1.x message (as cut out of the byte stream by
core.connection) into an HTTPRequest.

=============================================================================
MESSAGE LAYOUT (RFC 7230)
=============================================================================

    GET /health?verbose=1 HTTP/1.1\r\n      ← request line
    Host: localhost:8080\r\n                ← headers
    Connection: keep-alive\r\n
    \r\n                                    ← blank line
    <Content-Length bytes of body>          ← body (kept, never read by handlers)

The request line is `METHOD SP REQUEST-URI SP HTTP-VERSION`. Header names
are case-insensitive, so they are stored lower-cased.

=============================================================================
WHAT THE PARSER REJECTS
=============================================================================

    Request line does not match        → 400 Bad Request
    Method token outside VALID_METHODS → 405 Method Not Allowed
    Version not HTTP/1.0 or HTTP/1.1   → 505 HTTP Version Not Supported
    Body shorter than Content-Length   → 400 Bad Request
    Message larger than the limit      → 413 Payload Too Large

Routing only ever looks at `path`; everything else is parsed so that
keep-alive and HEAD handling work and so the access log has something to
say.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlsplit
import re


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the HTTP status the server should answer with before closing
    the connection.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Created per inbound message, owned by the single handler invocation
    that serves it and dropped once the response is written.

    Attributes:
        method:         GET, POST, HEAD, ...
        path:           Request path without the query string, exactly as sent.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header name (lower-case) → value.
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}.
        body:           Raw body bytes, exactly Content-Length long.
        client_address: (ip, port) of the peer.
        raw:            The framed message as received.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    @property
    def host(self) -> str:
        """Value of the Host header, empty when absent."""
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def content_length(self) -> int:
        """Declared body length, 0 when the header is missing or garbage."""
        try:
            return int(self.headers.get("content-length", "0"))
        except ValueError:
            return 0

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

            HTTP/1.1: open unless "Connection: close"
            HTTP/1.0: closed unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name)
        return values[0] if values else default


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

        raw bytes
           │
           ├── 1. size check ............... 413
           ├── 2. split at \\r\\n\\r\\n ....... 400 if missing
           ├── 3. request line ............. 400 / 405 / 505
           ├── 4. headers .................. lower-cased, duplicates joined
           ├── 5. body by Content-Length ... 400 if short
           └── 6. HTTPRequest
    """

    VALID_METHODS = {
        "GET",
        "HEAD",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "OPTIONS",
        "TRACE",
        "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse one complete HTTP request.

        Args:
            data: Bytes of exactly one message (headers plus body).
            client_address: Peer (ip, port), copied onto the request.

        Returns:
            The parsed HTTPRequest.

        Raises:
            HTTPParseError: If the message is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        # ─────────────────────────────────────────────────────────────────
        # HEADERS / BODY SPLIT
        # ─────────────────────────────────────────────────────────────────
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # ─────────────────────────────────────────────────────────────────
        # BODY
        # ─────────────────────────────────────────────────────────────────
        try:
            content_length = int(headers.get("content-length", "0"))
        except ValueError:
            raise HTTPParseError(
                f"Invalid Content-Length: {headers['content-length']!r}"
            ) from None

        if content_length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {content_length}")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """
        Split "GET /path?query HTTP/1.1" into its parts.

        The path is everything before "?", byte for byte: no percent
        decoding and no collapsing of "//" or ";params", so routing
        compares exactly what the client sent.

        Returns:
            (method, path, query_params, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        if uri.startswith(("http://", "https://")):
            # absolute-form: the authority is not part of the route
            parsed = urlsplit(uri)
            path, query = parsed.path or "/", parsed.query
        else:
            path, _, query = uri.partition("?")

        query_params = parse_qs(query, keep_blank_values=True)

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse "Name: value" lines into a dict keyed by lower-case name.

        Repeated headers are joined with ", " (RFC 7230 §3.2.2). Folded
        continuation lines are appended to the previous header. Lines that
        are not headers at all are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            # obs-fold continuation
            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0)
) -> HTTPRequest:
    """Parse with a default RequestParser."""
    return RequestParser().parse(data, client_address)
