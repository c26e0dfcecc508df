"""
=============================================================================
STATIC ROUTER
=============================================================================

Maps a request path to a handler by exact string comparison.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTING FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   GET /health                                                        │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──────────────────────────────────────────┐                      │
    │   │  ROUTE TABLE (read-only)                 │                      │
    │   │    /health  → health_check   ← MATCH     │                      │
    │   │    /        → echo                       │                      │
    │   └──────────────────────────────────────────┘                      │
    │        │                                                             │
    │        ▼                                                             │
    │   health_check(request) → HTTPResponse                               │
    │                                                                      │
    │   No entry for the path → 404 Not Found                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Matching rules:

    /health   matches  /health
    /health   does not match  /health/  /Health  /health/live
    /         matches  /  only

The method is not part of the key: GET, POST, HEAD ... to a known path
all reach the same handler.

The table is built once, checked for duplicate paths, and exposed through
a MappingProxyType so nothing can add or replace a route afterwards.

=============================================================================
"""

from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional, Tuple, Union

from .request import HTTPRequest
from .response import HTTPResponse, not_found


# A handler takes the request and returns the response to send.
Handler = Callable[[HTTPRequest], HTTPResponse]

RouteTable = Union[Mapping[str, Handler], Iterable[Tuple[str, Handler]]]


class Router:
    """
    Immutable path → handler lookup.

    Usage:
        router = Router({"/health": health_check, "/": echo})

        router.resolve("/health")    # → health_check
        router.resolve("/missing")   # → None
        router.dispatch(request)     # → handler response, or 404
    """

    def __init__(self, routes: RouteTable):
        """
        Build the route table.

        Args:
            routes: Mapping of path to handler, or an iterable of
                    (path, handler) pairs.

        Raises:
            ValueError: Same path given twice, or a path that is not an
                        absolute string.
            TypeError: A handler that is not callable.
        """
        pairs = routes.items() if isinstance(routes, Mapping) else routes

        table = {}
        for path, handler in pairs:
            if not isinstance(path, str) or not path.startswith("/"):
                raise ValueError(f"Route path must start with '/': {path!r}")
            if path in table:
                raise ValueError(f"Duplicate route: {path}")
            if not callable(handler):
                raise TypeError(f"Handler for {path} is not callable: {handler!r}")
            table[path] = handler

        self._routes = MappingProxyType(table)

    @property
    def routes(self) -> Mapping[str, Handler]:
        """Read-only view of the table."""
        return self._routes

    @property
    def paths(self) -> Tuple[str, ...]:
        return tuple(self._routes)

    def __contains__(self, path: object) -> bool:
        return path in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def resolve(self, path: str) -> Optional[Handler]:
        """
        Find the handler for `path`.

        Returns:
            The handler, or None when nothing matches.
        """
        return self._routes.get(path)

    def dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """
        Run the handler for `request.path`.

        Exceptions raised by the handler propagate to the caller.

        Returns:
            The handler's response, or 404 when the path is unknown.
        """
        handler = self.resolve(request.path)
        if handler is None:
            return not_found()
        return handler(request)

    def describe(self) -> list[str]:
        """
        One line per route, for startup logging.

            /health  → health_check
            /        → echo
        """
        width = max((len(path) for path in self._routes), default=0)
        return [
            f"{path:<{width}}  → {getattr(handler, '__name__', repr(handler))}"
            for path, handler in self._routes.items()
        ]
