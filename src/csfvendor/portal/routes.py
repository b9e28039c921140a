"""
Route handlers for the vendor portal API.

Each handler receives a RouteContext and returns a JSON-serializable dict.
Handlers set context.status for responses other than 200 OK.

Organization Endpoints:
    - POST /api/invitations: Issue an invitation
    - POST /api/invitations/{invitation_id}/revoke: Revoke an invitation
    - GET  /api/invitations/{assessment_id}/comparison: Compare answers
    - GET  /api/assessments/{assessment_id}/invitation: Latest invitation

Vendor Endpoints (token in path, or session cookie):
    - GET   /api/invitations/validate/{token}: Validate a magic link
    - GET   /api/invitations/{token}/items: List shadow items
    - PATCH /api/invitations/{token}/items/{item_id}: Answer an item
    - POST  /api/invitations/{token}/complete: Submit answers
    - GET   /api/vendor-portal/items: List items (session only)
    - PATCH /api/vendor-portal/items/{item_id}: Answer an item (session only)
    - POST  /api/vendor-portal/complete: Submit answers (session only)

Public:
    - GET /api/health: Health check

Vendor endpoints answer with generic errors only. Organization endpoints
include the error detail.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any

from csfvendor import __version__
from csfvendor.app import PortalServices
from csfvendor.errors import (
    AssessmentServiceError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    PortalError,
    TerminalStateError,
    ValidationError,
)
from csfvendor.invitations.gateway import ERROR_EXPIRED, ERROR_INVALID, ERROR_REVOKED
from csfvendor.storage.database import StorageError
from csfvendor.tokens import redact_token

logger = logging.getLogger(__name__)

# Route audiences
ORG = "org"
VENDOR = "vendor"
PUBLIC = "public"

# Rate limited operations
TOKEN_VALIDATION = "token_validation"
STATUS_UPDATE = "status_update"

VALIDATION_STATUS_CODES = {
    ERROR_INVALID: HTTPStatus.UNAUTHORIZED,
    ERROR_EXPIRED: HTTPStatus.GONE,
    ERROR_REVOKED: HTTPStatus.FORBIDDEN,
}


class RouteContext:
    """
    Context object passed to route handlers.

    Attributes:
        services: Wired portal services.
        params: Path parameters captured by the route pattern.
        query: Query string parameters.
        body: Decoded JSON request body, if any.
        client_ip: Remote address of the caller.
        user_agent: User-Agent header.
        session: Vendor session value from the cookie or header.
        status: HTTP status of the response.
        response_headers: Extra headers the handler wants sent.
    """

    def __init__(
        self,
        services: PortalServices,
        params: dict[str, str] | None = None,
        query: dict[str, list[str]] | None = None,
        body: Any = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
        session: str | None = None,
    ) -> None:
        """Initialize route context."""
        self.services = services
        self.params = params or {}
        self.query = query or {}
        self.body = body
        self.client_ip = client_ip
        self.user_agent = user_agent
        self.session = session
        self.status = HTTPStatus.OK
        self.response_headers: list[tuple[str, str]] = []

    def now(self) -> datetime:
        return self.services.invitations.now()

    def query_value(self, name: str) -> str | None:
        values = self.query.get(name)
        return values[0] if values else None

    def json_body(self) -> dict[str, Any]:
        """The request body as an object, or ValidationError."""
        if self.body is None:
            return {}
        if not isinstance(self.body, dict):
            raise ValidationError("Request body must be a JSON object")
        return self.body


RouteHandler = Callable[[RouteContext], dict[str, Any]]


@dataclass
class Route:
    """A registered API route."""

    method: str
    template: str
    handler: RouteHandler
    audience: str
    rate_limit: str | None = None

    def __post_init__(self) -> None:
        pattern = re.sub(r"\{(\w+)\}", r"(?P<\1>[^/]+)", self.template)
        self.pattern = re.compile(f"^{pattern}$")

    def match(self, path: str) -> dict[str, str] | None:
        m = self.pattern.match(path)
        return m.groupdict() if m else None


# =============================================================================
# ORGANIZATION HANDLERS
# =============================================================================

def handle_create_invitation(context: RouteContext) -> dict[str, Any]:
    """
    Handle POST /api/invitations.

    Body:
        organization_assessment_id: Vendor assessment to send (required).
        vendor_contact_email: Recipient (required).
        vendor_contact_name: Optional recipient name.
        expiry_days: Optional link lifetime in days.
        message: Optional note for the vendor.

    Returns:
        The issued invitation including the one-time access token.
    """
    body = context.json_body()
    assessment_id = body.get("organization_assessment_id") or body.get("assessment_id")
    if not assessment_id:
        raise ValidationError("organization_assessment_id is required")

    issued = context.services.issuer.issue(
        organization_assessment_id=str(assessment_id),
        vendor_contact_email=body.get("vendor_contact_email", ""),
        vendor_contact_name=body.get("vendor_contact_name"),
        expiry_days=body.get("expiry_days"),
        message=body.get("message"),
        ip_address=context.client_ip,
        user_agent=context.user_agent,
    )
    context.status = HTTPStatus.CREATED
    return issued.to_dict()


def handle_revoke_invitation(context: RouteContext) -> dict[str, Any]:
    """Handle POST /api/invitations/{invitation_id}/revoke."""
    body = context.json_body()
    invitation = context.services.issuer.revoke(
        context.params["invitation_id"],
        revoked_by=body.get("revoked_by"),
        ip_address=context.client_ip,
        user_agent=context.user_agent,
    )
    return {
        "success": True,
        "revoked_at": invitation.revoked_at.isoformat() if invitation.revoked_at else None,
    }


def handle_comparison(context: RouteContext) -> dict[str, Any]:
    """Handle GET /api/invitations/{assessment_id}/comparison."""
    result = context.services.comparison.compare(context.params["assessment_id"])
    return result.to_dict()


def handle_assessment_invitation(context: RouteContext) -> dict[str, Any]:
    """
    Handle GET /api/assessments/{assessment_id}/invitation.

    Returns the most recent invitation with its effective status, or null.
    """
    invitation = context.services.invitations.get_by_assessment(
        context.params["assessment_id"]
    )
    return {"invitation": invitation.to_dict(now=context.now()) if invitation else None}


# =============================================================================
# VENDOR HANDLERS
# =============================================================================

def handle_validate_token(context: RouteContext) -> dict[str, Any]:
    """
    Handle GET /api/invitations/validate/{token}.

    On success sets the vendor session cookie. Failures answer 401 (invalid),
    410 (expired) or 403 (revoked), always with {valid: false, error}.
    """
    services = context.services
    result = services.gateway.validate(
        context.params["token"],
        ip_address=context.client_ip,
        user_agent=context.user_agent,
    )
    if not result.valid:
        context.status = VALIDATION_STATUS_CODES.get(
            result.error or ERROR_INVALID, HTTPStatus.UNAUTHORIZED
        )
        return result.to_dict()

    if result.session_token:
        context.response_headers.append(
            ("Set-Cookie", session_cookie(services, result.session_token))
        )
    return result.to_dict(now=context.now())


def handle_list_items(context: RouteContext) -> dict[str, Any]:
    """Handle GET /api/invitations/{token}/items and /api/vendor-portal/items."""
    token = _vendor_token(context)
    items = context.services.proxy.list_items(
        token, function_id=context.query_value("function_id")
    )
    return {"items": items}


def handle_update_item(context: RouteContext) -> dict[str, Any]:
    """Handle PATCH of a single shadow item."""
    token = _vendor_token(context)
    return context.services.proxy.update_item(
        token,
        context.params["item_id"],
        context.json_body(),
        ip_address=context.client_ip,
        user_agent=context.user_agent,
    )


def handle_complete(context: RouteContext) -> dict[str, Any]:
    """Handle POST of the vendor's submission."""
    token = _vendor_token(context)
    completed_at = context.services.proxy.complete(
        token, ip_address=context.client_ip, user_agent=context.user_agent
    )
    return {"success": True, "completed_at": completed_at.isoformat()}


def _vendor_token(context: RouteContext) -> str:
    return context.services.gateway.authorize(
        token=context.params.get("token"), session=context.session
    )


# =============================================================================
# PUBLIC HANDLERS
# =============================================================================

def handle_health(context: RouteContext) -> dict[str, Any]:
    """
    Handle GET /api/health.

    Returns server health status.
    """
    database_ok = True
    try:
        context.services.database.get_statistics()
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        database_ok = False

    return {
        "status": "healthy" if database_ok else "degraded",
        "version": __version__,
        "timestamp": context.now().isoformat(),
        "database": database_ok,
    }


# =============================================================================
# RESPONSES
# =============================================================================

def session_cookie(services: PortalServices, value: str) -> str:
    """Set-Cookie value for a vendor session."""
    portal = services.settings.portal
    cookie = (
        f"{portal.cookie_name}={value}; Path=/api; HttpOnly; SameSite=Strict; "
        f"Max-Age={portal.session_ttl_hours * 3600}"
    )
    if portal.cookie_secure:
        cookie += "; Secure"
    return cookie


def error_response(error: Exception, audience: str) -> tuple[HTTPStatus, dict[str, Any]]:
    """
    Map an exception raised by a handler to a status code and body.

    Vendor routes get generic messages. Organization routes get the
    exception text.
    """
    if audience == VENDOR:
        return _vendor_error(error)

    if isinstance(error, ValidationError):
        return HTTPStatus.BAD_REQUEST, {"error": str(error)}
    if isinstance(error, NotFoundError):
        return HTTPStatus.NOT_FOUND, {"error": str(error)}
    if isinstance(error, (ConflictError, InvalidStateError)):
        return HTTPStatus.CONFLICT, {"error": str(error)}
    if isinstance(error, AssessmentServiceError):
        return HTTPStatus.BAD_GATEWAY, {"error": str(error)}
    if isinstance(error, PortalError):
        return HTTPStatus.BAD_REQUEST, {"error": str(error)}
    return _internal_error(error)


def _vendor_error(error: Exception) -> tuple[HTTPStatus, dict[str, Any]]:
    if isinstance(error, ValidationError):
        return HTTPStatus.BAD_REQUEST, {"error": str(error)}
    if isinstance(error, NotFoundError):
        return HTTPStatus.NOT_FOUND, {"error": "invalid invitation"}
    if isinstance(error, ExpiredError):
        return HTTPStatus.FORBIDDEN, {"error": "invitation expired"}
    if isinstance(error, TerminalStateError):
        return HTTPStatus.FORBIDDEN, {"error": "invitation is no longer active"}
    if isinstance(error, InvalidStateError):
        return HTTPStatus.CONFLICT, {"error": "invitation has not been opened"}
    if isinstance(error, ConflictError):
        return HTTPStatus.CONFLICT, {"error": "please try again"}
    if isinstance(error, AssessmentServiceError):
        return HTTPStatus.SERVICE_UNAVAILABLE, {"error": "service unavailable"}
    return _internal_error(error)


def _internal_error(error: Exception) -> tuple[HTTPStatus, dict[str, Any]]:
    if isinstance(error, StorageError):
        logger.error(f"Storage error in API handler: {error}")
    else:
        logger.exception(f"Error in API handler: {error}")
    return HTTPStatus.INTERNAL_SERVER_ERROR, {"error": "internal error"}


# Route registry
API_ROUTES: list[Route] = [
    Route("GET", "/api/health", handle_health, PUBLIC),
    Route("POST", "/api/invitations", handle_create_invitation, ORG),
    Route(
        "GET",
        "/api/invitations/validate/{token}",
        handle_validate_token,
        VENDOR,
        rate_limit=TOKEN_VALIDATION,
    ),
    Route("GET", "/api/invitations/{token}/items", handle_list_items, VENDOR),
    Route(
        "PATCH",
        "/api/invitations/{token}/items/{item_id}",
        handle_update_item,
        VENDOR,
        rate_limit=STATUS_UPDATE,
    ),
    Route(
        "POST",
        "/api/invitations/{token}/complete",
        handle_complete,
        VENDOR,
        rate_limit=TOKEN_VALIDATION,
    ),
    Route("GET", "/api/vendor-portal/items", handle_list_items, VENDOR),
    Route(
        "PATCH",
        "/api/vendor-portal/items/{item_id}",
        handle_update_item,
        VENDOR,
        rate_limit=STATUS_UPDATE,
    ),
    Route(
        "POST",
        "/api/vendor-portal/complete",
        handle_complete,
        VENDOR,
        rate_limit=TOKEN_VALIDATION,
    ),
    Route("POST", "/api/invitations/{invitation_id}/revoke", handle_revoke_invitation, ORG),
    Route("GET", "/api/invitations/{assessment_id}/comparison", handle_comparison, ORG),
    Route(
        "GET",
        "/api/assessments/{assessment_id}/invitation",
        handle_assessment_invitation,
        ORG,
    ),
]


def get_route(method: str, path: str) -> tuple[Route, dict[str, str]] | None:
    """
    Find the route for a request.

    Returns:
        The route and its path parameters, or None if nothing matches.
    """
    for route in API_ROUTES:
        if route.method != method:
            continue
        params = route.match(path)
        if params is not None:
            return route, params
    return None


def path_exists(path: str) -> bool:
    """Check whether any route serves the path, with any method."""
    return any(route.match(path) is not None for route in API_ROUTES)


def list_routes() -> list[str]:
    """
    List all registered API routes.

    Returns:
        List of "METHOD /path" strings.
    """
    return [f"{route.method} {route.template}" for route in API_ROUTES]


def redact_path(path: str) -> str:
    """Replace any access token in a request path with its redacted form."""
    bare = path.split("?", 1)[0]
    for route in API_ROUTES:
        m = route.pattern.match(bare)
        if m is None or "token" not in m.groupdict():
            continue
        start, end = m.span("token")
        return bare[:start] + redact_token(m.group("token")) + bare[end:] + path[len(bare):]
    return path
