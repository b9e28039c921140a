"""
Vendor portal HTTP API.

Serves the organization endpoints (issue, revoke, compare) and the public
vendor endpoints (validate, list and answer items, submit) over a threaded
standard library HTTP server.
"""

from csfvendor.portal.routes import (
    API_ROUTES,
    Route,
    RouteContext,
    error_response,
    get_route,
    list_routes,
    redact_path,
)
from csfvendor.portal.server import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    PortalRequestHandler,
    PortalServer,
    find_available_port,
)

__all__ = [
    # Server
    "PortalServer",
    "PortalRequestHandler",
    "find_available_port",
    "DEFAULT_HOST",
    "DEFAULT_PORT",
    # Routes
    "API_ROUTES",
    "Route",
    "RouteContext",
    "get_route",
    "list_routes",
    "error_response",
    "redact_path",
]
