"""
=============================================================================
ROUTE HANDLERS
=============================================================================

The two endpoints this server answers, and the route table that wires
them up.

    ┌────────────┬───────────────┬────────┬──────────────┐
    │ PATH       │ HANDLER       │ STATUS │ BODY         │
    ├────────────┼───────────────┼────────┼──────────────┤
    │ /health    │ health_check  │ 200    │ OK           │
    │ /          │ echo          │ 200    │ hello world  │
    └────────────┴───────────────┴────────┴──────────────┘

Both handlers ignore the request entirely: method, headers and body make
no difference to the answer. Each returns the same prebuilt HTTPResponse
every time, which is safe because responses are immutable.

=============================================================================
LIVENESS / READINESS
=============================================================================

Orchestrators (Kubernetes, load balancers, docker HEALTHCHECK) poll
/health. A 200 means "the process is up and its event loop is turning";
there are no dependencies to check, so liveness and readiness are the
same probe.

=============================================================================
"""

from types import MappingProxyType

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, text_response
from ..http.router import Router


_HEALTH_OK = text_response("OK", headers={"Cache-Control": "no-store"})
_HELLO_WORLD = text_response("hello world")


def health_check(request: HTTPRequest) -> HTTPResponse:
    """Liveness/readiness probe: always 200 "OK", never cached."""
    return _HEALTH_OK


def echo(request: HTTPRequest) -> HTTPResponse:
    """
    Fixed-string responder for "/".

    Always 200 "hello world". Despite the name it does not reflect the
    request back.
    """
    return _HELLO_WORLD


ROUTES = MappingProxyType({
    "/health": health_check,
    "/": echo,
})


def default_router() -> Router:
    """Router over ROUTES."""
    return Router(ROUTES)
