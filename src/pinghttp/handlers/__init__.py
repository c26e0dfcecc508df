"""
Request handlers.

    from pinghttp.handlers import default_router

    router = default_router()   # /health → health_check, / → echo
"""

from .routes import ROUTES, health_check, echo, default_router

__all__ = [
    "ROUTES",
    "health_check",
    "echo",
    "default_router",
]
