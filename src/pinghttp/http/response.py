"""
=============================================================================
HTTP RESPONSE
=============================================================================

An HTTPResponse is created by a handler, handed to the server, and written
to the socket. It is immutable once constructed: the server derives a copy
with the Connection header set instead of editing the handler's object.

=============================================================================
RESPONSE FORMAT
=============================================================================

    HTTP/1.1 200 OK\r\n                          ← status line
    Content-Type: text/plain; charset=utf-8\r\n  ← handler headers
    Connection: keep-alive\r\n                   ← added by the server
    Content-Length: 2\r\n                        ← added by to_bytes()
    Date: Sat, 17 Oct 2026 12:00:00 GMT\r\n      ← added by to_bytes()
    Server: pinghttp/1.0.0\r\n                   ← added by to_bytes()
    \r\n
    OK                                           ← body

=============================================================================
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional, Union

from .status_codes import HTTPStatus


TEXT_PLAIN = "text/plain; charset=utf-8"


@dataclass(frozen=True)
class HTTPResponse:
    """
    An immutable HTTP response.

        HTTPResponse(status=HTTPStatus.OK, body="OK")
            │
            ├── headers  → read-only mapping
            ├── body     → str is encoded to UTF-8 bytes
            └── to_bytes() → wire format

    Attributes:
        status: Status code.
        headers: Response headers (read-only view).
        body: Body bytes.
        version: Protocol version for the status line.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Union[str, bytes] = b""
    version: str = "HTTP/1.1"

    def __post_init__(self):
        # frozen: go through object.__setattr__ to normalise once
        object.__setattr__(self, "status", HTTPStatus(self.status))
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))
        if isinstance(self.body, str):
            object.__setattr__(self, "body", self.body.encode("utf-8"))

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def text(self) -> str:
        """Body decoded as UTF-8."""
        return self.body.decode("utf-8")

    def with_header(self, name: str, value: str) -> "HTTPResponse":
        """Copy of this response with one header set."""
        return self.with_headers({name: value})

    def with_headers(self, headers: Mapping[str, str]) -> "HTTPResponse":
        """Copy of this response with `headers` merged over the existing ones."""
        merged = dict(self.headers)
        merged.update(headers)
        return dataclasses.replace(self, headers=merged)

    def to_bytes(
        self,
        server_name: str = "pinghttp",
        include_body: bool = True,
    ) -> bytes:
        """
        Serialize for socket.send().

        Content-Length, Date and Server are filled in when the handler did
        not set them. Content-Length always describes the body, including
        for HEAD where `include_body` is False and the body is left off.

        Args:
            server_name: Value for the Server header.
            include_body: False for HEAD responses.

        Returns:
            The complete response as bytes.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        head = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return head + self.body if include_body else head


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an RFC 7231 HTTP-date.

    Example: "Sat, 17 Oct 2026 12:00:00 GMT". Always GMT.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE CONSTRUCTORS
# =============================================================================

def text_response(
    body: str,
    status: HTTPStatus = HTTPStatus.OK,
    headers: Optional[Mapping[str, str]] = None,
) -> HTTPResponse:
    """A text/plain response."""
    all_headers = {"Content-Type": TEXT_PLAIN}
    if headers:
        all_headers.update(headers)
    return HTTPResponse(status=status, headers=all_headers, body=body)


def not_found(message: str = "Not Found") -> HTTPResponse:
    """404 with a plain-text body."""
    return text_response(message, HTTPStatus.NOT_FOUND)


def error_response(status_code: int, message: str) -> HTTPResponse:
    """
    Plain-text error response that closes the connection.

    Used for requests that never reach a handler (parse failures,
    oversized messages). Codes outside HTTPStatus become 500.
    """
    try:
        status = HTTPStatus(status_code)
    except ValueError:
        status = HTTPStatus.INTERNAL_SERVER_ERROR

    return text_response(message, status, {"Connection": "close"})
