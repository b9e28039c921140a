"""
Exception hierarchy for the vendor portal.

All domain failures derive from PortalError so HTTP handlers and the CLI
can map them to responses and exit codes in one place. Vendor-facing
surfaces collapse these into generic messages; organization-facing ones
surface the message text.

    PortalError
    ├── NotFoundError
    │   └── SessionError
    ├── InvalidStateError
    │   └── TerminalStateError
    │       └── ExpiredError
    ├── ValidationError
    ├── ConflictError
    └── AssessmentServiceError
"""

from __future__ import annotations


class PortalError(Exception):
    """Base exception for vendor portal errors."""

    pass


class NotFoundError(PortalError):
    """Raised when an invitation, assessment or item does not exist."""

    pass


class SessionError(NotFoundError):
    """Raised when a vendor session is missing, tampered with or stale."""

    pass


class InvalidStateError(PortalError):
    """Raised when an operation is not allowed in the invitation's current state."""

    pass


class TerminalStateError(InvalidStateError):
    """Raised when the invitation is completed, revoked or expired."""

    pass


class ExpiredError(TerminalStateError):
    """Raised when the invitation token is past its expiry."""

    pass


class ValidationError(PortalError):
    """Raised when input is malformed or violates a precondition."""

    pass


class ConflictError(PortalError):
    """
    Raised when a concurrent change prevents the operation.

    Covers a second active invitation for the same assessment and a
    state transition that lost its compare-and-set twice.
    """

    pass


class AssessmentServiceError(PortalError):
    """Raised when the remote assessment service cannot be reached."""

    pass
