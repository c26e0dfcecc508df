"""
Unit tests for HTTP response serialization and status codes.
"""

from datetime import datetime, timezone
from types import MappingProxyType

import pytest

from pinghttp.http.response import (
    HTTPResponse,
    TEXT_PLAIN,
    text_response,
    not_found,
    error_response,
    format_http_date,
)
from pinghttp.http.status_codes import HTTPStatus


def split_response(data: bytes):
    """Split wire bytes into (status line, headers dict, body)."""
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = dict(line.split(": ", 1) for line in lines[1:])
    return lines[0], headers, body


class TestHTTPResponse:
    """Tests for HTTPResponse."""

    def test_defaults(self):
        response = HTTPResponse()
        assert response.status == HTTPStatus.OK
        assert response.body == b""
        assert response.version == "HTTP/1.1"

    def test_str_body_encoded(self):
        response = HTTPResponse(body="héllo")
        assert response.body == "héllo".encode("utf-8")
        assert response.text == "héllo"

    def test_int_status_coerced(self):
        response = HTTPResponse(status=404)
        assert response.status is HTTPStatus.NOT_FOUND

    def test_immutable(self):
        response = text_response("OK")

        with pytest.raises(AttributeError):
            response.body = b"changed"

        assert isinstance(response.headers, MappingProxyType)
        with pytest.raises(TypeError):
            response.headers["X-New"] = "1"

    def test_with_header_returns_copy(self):
        original = text_response("OK")
        updated = original.with_header("Connection", "close")

        assert updated.headers["Connection"] == "close"
        assert "Connection" not in original.headers
        assert updated.body == original.body

    def test_with_headers_overrides(self):
        response = text_response("OK").with_headers({"Content-Type": "text/html"})
        assert response.headers["Content-Type"] == "text/html"

    def test_status_line(self):
        assert HTTPResponse(status=HTTPStatus.NOT_FOUND).status_line == "HTTP/1.1 404 Not Found"


class TestToBytes:
    """Tests for wire serialization."""

    def test_to_bytes(self):
        status_line, headers, body = split_response(
            text_response("hello world").to_bytes("pinghttp/test")
        )

        assert status_line == "HTTP/1.1 200 OK"
        assert headers["Content-Type"] == TEXT_PLAIN
        assert headers["Content-Length"] == "11"
        assert headers["Server"] == "pinghttp/test"
        assert headers["Date"].endswith("GMT")
        assert body == b"hello world"

    def test_head_omits_body_keeps_length(self):
        data = text_response("hello world").to_bytes(include_body=False)
        _, headers, body = split_response(data)

        assert data.endswith(b"\r\n\r\n")
        assert body == b""
        assert headers["Content-Length"] == "11"

    def test_handler_headers_not_overridden(self):
        response = HTTPResponse(headers={"Server": "custom"}, body=b"x")
        _, headers, _ = split_response(response.to_bytes("pinghttp"))
        assert headers["Server"] == "custom"

    def test_format_http_date(self):
        dt = datetime(2026, 10, 17, 8, 5, 9, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Sat, 17 Oct 2026 08:05:09 GMT"


class TestConstructors:
    """Tests for the convenience constructors."""

    def test_text_response(self):
        response = text_response("OK", headers={"Cache-Control": "no-store"})
        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == TEXT_PLAIN
        assert response.headers["Cache-Control"] == "no-store"

    def test_not_found(self):
        response = not_found()
        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"Not Found"

    def test_error_response_closes(self):
        response = error_response(400, "Invalid request line")
        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.headers["Connection"] == "close"
        assert response.text == "Invalid request line"

    def test_error_response_unknown_code(self):
        assert error_response(418, "teapot").status == HTTPStatus.INTERNAL_SERVER_ERROR


class TestHTTPStatus:
    """Tests for HTTPStatus helpers."""

    def test_phrases(self):
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.PAYLOAD_TOO_LARGE.phrase == "Payload Too Large"

    def test_classes(self):
        assert HTTPStatus.OK.is_success
        assert HTTPStatus.NOT_FOUND.is_client_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_server_error
        assert HTTPStatus.BAD_REQUEST.is_error
        assert not HTTPStatus.OK.is_error
