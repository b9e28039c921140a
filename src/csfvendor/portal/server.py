"""
HTTP server for the vendor portal API.

This module provides a small JSON API server using Python's built-in
http.server module. Requests are handled on separate threads.

Features:
    - Local-only binding by default (127.0.0.1)
    - JSON request and response bodies
    - Vendor session cookie (HttpOnly, SameSite=Strict)
    - Per-IP rate limiting of the public vendor endpoints
    - Optional bearer key for organization endpoints

Security:
    - Access tokens are redacted from request logs
    - Referrer-Policy no-referrer keeps tokens out of Referer headers
    - Responses are not cacheable
    - CORS disabled
"""

from __future__ import annotations

import hmac
import json
import logging
import socket
import threading
from http import HTTPStatus
from http.cookies import CookieError, SimpleCookie
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from csfvendor.app import PortalServices
from csfvendor.config.settings import RateLimit
from csfvendor.portal.routes import (
    ORG,
    Route,
    RouteContext,
    error_response,
    get_route,
    path_exists,
    redact_path,
)
from csfvendor.storage.models import AuditAction

logger = logging.getLogger(__name__)

# Default host and port
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8787

# Largest accepted request body in bytes
MAX_BODY_BYTES = 1024 * 1024

SESSION_HEADER = "X-Vendor-Session"

SECURITY_HEADERS = {
    "Referrer-Policy": "no-referrer",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "no-store",
}


class BadRequestError(Exception):
    """Raised when the request body cannot be read or decoded."""

    pass


class PortalHTTPServer(ThreadingHTTPServer):
    """Threaded HTTP server carrying the portal services."""

    daemon_threads = True

    def __init__(self, server_address: tuple[str, int], services: PortalServices) -> None:
        self.services = services
        super().__init__(server_address, PortalRequestHandler)


class PortalRequestHandler(BaseHTTPRequestHandler):
    """
    HTTP request handler for the portal API.

    Matches requests against the route registry, applies organization
    authentication and rate limits, and serializes handler results.
    """

    server: PortalHTTPServer
    server_version = "csfvendor"

    def log_message(self, format: str, *args: Any) -> None:
        """Log HTTP requests to logger instead of stderr, with tokens redacted."""
        message = format % args
        path = getattr(self, "path", "")
        if path:
            message = message.replace(path, redact_path(path))
        logger.debug("Portal request: %s", message)

    def do_GET(self) -> None:
        """Handle GET requests."""
        self._dispatch("GET")

    def do_POST(self) -> None:
        """Handle POST requests."""
        self._dispatch("POST")

    def do_PATCH(self) -> None:
        """Handle PATCH requests."""
        self._dispatch("PATCH")

    def _dispatch(self, method: str) -> None:
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/") or "/"

        match = get_route(method, path)
        if match is None:
            if path_exists(path):
                self._serve_json(
                    {"error": "method not allowed"}, HTTPStatus.METHOD_NOT_ALLOWED
                )
            else:
                self._send_404()
            return

        route, params = match
        services = self.server.services

        if route.audience == ORG and not self._org_authorized(services):
            self._serve_json({"error": "unauthorized"}, HTTPStatus.UNAUTHORIZED)
            return

        if route.rate_limit and not self._within_rate_limit(services, route):
            return

        try:
            body = self._read_json_body()
        except BadRequestError as e:
            self._serve_json({"error": str(e)}, HTTPStatus.BAD_REQUEST)
            return

        context = RouteContext(
            services=services,
            params=params,
            query=parse_qs(parsed.query),
            body=body,
            client_ip=self.client_address[0],
            user_agent=self.headers.get("User-Agent"),
            session=self._vendor_session(services),
        )
        self._serve_api_route(route, context)

    def _serve_api_route(self, route: Route, context: RouteContext) -> None:
        """Run a route handler and serialize its result."""
        try:
            result = route.handler(context)
        except Exception as e:
            status, result = error_response(e, route.audience)
            logger.debug(
                f"{route.method} {route.template} -> {status.value}: {type(e).__name__}"
            )
            self._serve_json(result, status)
            return

        self._serve_json(result, context.status, context.response_headers)

    def _org_authorized(self, services: PortalServices) -> bool:
        """
        Check the organization bearer key.

        Without a configured key, organization requests are trusted to have
        been authenticated upstream.
        """
        api_key = services.settings.portal.org_api_key
        if not api_key:
            return True
        header = self.headers.get("Authorization", "")
        scheme, _, presented = header.partition(" ")
        if scheme.lower() != "bearer" or not presented:
            return False
        return hmac.compare_digest(presented.strip().encode(), api_key.encode())

    def _within_rate_limit(self, services: PortalServices, route: Route) -> bool:
        """Count the request; answer 429 and return False when over the limit."""
        limits = services.settings.rate_limits
        if not limits.enabled:
            return True

        limit: RateLimit = getattr(limits, route.rate_limit or "")
        client_ip = self.client_address[0]
        decision = services.rate_limiter.check(client_ip, route.rate_limit or "", limit)
        if decision.allowed:
            return True

        services.audit.record(
            None,
            AuditAction.RATE_LIMITED,
            ip_address=client_ip,
            user_agent=self.headers.get("User-Agent"),
            metadata={"operation": route.rate_limit, "path": redact_path(self.path)},
        )
        logger.warning(f"Rate limited {client_ip} on {route.rate_limit}")
        self._serve_json(
            {"error": "too many requests", "retry_after": decision.retry_after},
            HTTPStatus.TOO_MANY_REQUESTS,
            [("Retry-After", str(decision.retry_after))],
        )
        return False

    def _vendor_session(self, services: PortalServices) -> str | None:
        header = self.headers.get(SESSION_HEADER)
        if header:
            return header.strip()

        raw = self.headers.get("Cookie")
        if not raw:
            return None
        cookie: SimpleCookie = SimpleCookie()
        try:
            cookie.load(raw)
        except CookieError:
            return None
        morsel = cookie.get(services.settings.portal.cookie_name)
        return morsel.value if morsel else None

    def _read_json_body(self) -> Any:
        length_header = self.headers.get("Content-Length")
        if not length_header:
            return None
        try:
            length = int(length_header)
        except ValueError as e:
            raise BadRequestError("Invalid Content-Length") from e
        if length < 0 or length > MAX_BODY_BYTES:
            raise BadRequestError("Request body too large")
        if length == 0:
            return None

        raw = self.rfile.read(length)
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BadRequestError("Request body must be valid JSON") from e

    def _serve_json(
        self,
        data: Any,
        status: HTTPStatus = HTTPStatus.OK,
        headers: list[tuple[str, str]] | None = None,
    ) -> None:
        """Serve JSON response."""
        content = json.dumps(data, indent=2, default=str)
        encoded = content.encode("utf-8")

        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        for name, value in SECURITY_HEADERS.items():
            self.send_header(name, value)
        for name, value in headers or []:
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(encoded)

    def _send_404(self) -> None:
        """Send 404 Not Found response."""
        self._serve_json({"error": "not found"}, HTTPStatus.NOT_FOUND)


class PortalServer:
    """
    Portal HTTP server manager.

    Provides methods for starting, stopping, and managing the portal
    HTTP server. Runs the server in a background thread unless blocking.

    Example:
        server = PortalServer(services)
        server.start(host="127.0.0.1", port=8787)

        if server.is_running():
            print(f"Portal at {server.get_url()}")

        server.stop()

    Attributes:
        host: Host address to bind to.
        port: Port number to bind to. 0 picks a free port on start.
    """

    def __init__(
        self,
        services: PortalServices,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
    ) -> None:
        self.services = services
        self.host = host
        self.port = port
        self._server: PortalHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._running = False

    def start(
        self,
        host: str | None = None,
        port: int | None = None,
        blocking: bool = False,
    ) -> bool:
        """
        Start the portal server.

        Args:
            host: Host address to bind to (overrides instance setting).
            port: Port number to bind to (overrides instance setting).
            blocking: If True, blocks until server is stopped.

        Returns:
            True if server started successfully, False otherwise.
        """
        if self._running:
            logger.warning("Portal server is already running")
            return True

        if host:
            self.host = host
        if port is not None:
            self.port = port

        try:
            self._server = PortalHTTPServer((self.host, self.port), self.services)
        except OSError as e:
            logger.error("Failed to start portal server: %s", e)
            return False

        self.port = self._server.server_address[1]
        self._running = True
        logger.info("Portal server starting at %s", self.get_url())

        if blocking:
            self._run_server()
        else:
            self._thread = threading.Thread(target=self._run_server, daemon=True)
            self._thread.start()

        return True

    def _run_server(self) -> None:
        """Run the server loop."""
        if self._server:
            try:
                self._server.serve_forever()
            except Exception as e:
                logger.error("Portal server error: %s", e)
            finally:
                self._running = False

    def stop(self) -> None:
        """Stop the portal server."""
        if self._server is None:
            return

        logger.info("Stopping portal server")

        self._server.shutdown()
        self._server.server_close()
        self._server = None

        if self._thread:
            self._thread.join(timeout=5.0)
            self._thread = None

        self._running = False

    def is_running(self) -> bool:
        """
        Check if server is running.

        Returns:
            True if server is running, False otherwise.
        """
        return self._running

    def get_url(self) -> str:
        """
        Get the portal URL.

        Returns:
            URL string for the portal API.
        """
        return f"http://{self.host}:{self.port}"

    def get_status(self) -> dict[str, Any]:
        """
        Get server status information.

        Returns:
            Dictionary with server status.
        """
        return {
            "running": self._running,
            "host": self.host,
            "port": self.port,
            "url": self.get_url() if self._running else None,
            "data_dir": str(self.services.database.data_dir),
        }


def find_available_port(
    start_port: int = DEFAULT_PORT, max_attempts: int = 10, host: str = DEFAULT_HOST
) -> int:
    """
    Find an available port starting from the given port.

    Args:
        start_port: Port number to start searching from.
        max_attempts: Maximum number of ports to try.
        host: Interface the port must be free on.

    Returns:
        An available port number.

    Raises:
        RuntimeError: If no available port is found.
    """
    for i in range(max_attempts):
        port = start_port + i
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind((host, port))
                return port
        except OSError:
            continue

    raise RuntimeError(
        f"No available port found in range {start_port}-{start_port + max_attempts - 1}"
    )
