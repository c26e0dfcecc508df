"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Message model and routing, independent of sockets:

    request.py       bytes → HTTPRequest
    response.py      HTTPResponse → bytes
    router.py        path → handler
    status_codes.py  HTTPStatus enum

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    TEXT_PLAIN,
    text_response,
    not_found,
    error_response,
    format_http_date,
)
from .router import Router, Handler
from .status_codes import HTTPStatus

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "TEXT_PLAIN",
    "text_response",
    "not_found",
    "error_response",
    "format_http_date",
    "Router",
    "Handler",
    "HTTPStatus",
]
