"""
Public access gateway for vendor magic links.

The gateway is the only entry point that accepts an access token from an
unauthenticated caller. Validation answers with one of three generic
errors ("invalid token", "expired", "revoked") and never reveals why a
lookup failed internally.

Check order for a presented token:
    1. unknown token             -> invalid token
    2. past expiry (any status)  -> expired, nothing is written
    3. revoked                   -> revoked
    4. completed                 -> valid, read only
    5. pending or accessed       -> access transition, valid
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from csfvendor.errors import (
    ExpiredError,
    PortalError,
    SessionError,
    TerminalStateError,
)
from csfvendor.invitations.sessions import SessionManager
from csfvendor.services.base import AssessmentService
from csfvendor.storage.audit_log import AuditLog
from csfvendor.storage.database import StorageError
from csfvendor.storage.invitation_store import InvitationStore
from csfvendor.storage.models import (
    Assessment,
    AssessmentStatus,
    AuditAction,
    Invitation,
    InvitationEvent,
    InvitationStatus,
)
from csfvendor.tokens import is_well_formed, redact_token, token_hint, tokens_match

logger = logging.getLogger(__name__)

ERROR_INVALID = "invalid token"
ERROR_EXPIRED = "expired"
ERROR_REVOKED = "revoked"


@dataclass
class ValidationResult:
    """Outcome of validating a magic link token."""

    valid: bool
    error: str | None = None
    invitation: Invitation | None = None
    assessment: Assessment | None = None
    vendor_contact_name: str | None = None
    read_only: bool = False
    session_token: str | None = None

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        """Public representation. The session value is delivered separately."""
        if not self.valid:
            return {"valid": False, "error": self.error}

        invitation = self.invitation
        return {
            "valid": True,
            "invitation": {
                "id": invitation.id,
                "status": invitation.effective_status(now).value
                if now
                else invitation.status.value,
                "message": invitation.message,
                "expires_at": invitation.token_expires_at.isoformat(),
                "completed_at": invitation.completed_at.isoformat()
                if invitation.completed_at
                else None,
            }
            if invitation
            else None,
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "vendor_contact_name": self.vendor_contact_name,
            "read_only": self.read_only,
        }


class PublicAccessGateway:
    """
    Validates magic link tokens and vendor sessions.

    Example:
        result = gateway.validate(token, ip_address=client_ip)
        if result.valid:
            set_cookie(result.session_token)

        token = gateway.authorize(session=cookie_value)
    """

    def __init__(
        self,
        invitations: InvitationStore,
        assessments: AssessmentService,
        sessions: SessionManager,
        audit: AuditLog,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.invitations = invitations
        self.assessments = assessments
        self.sessions = sessions
        self.audit = audit
        self._clock = clock or (lambda: datetime.now(UTC))

    def validate(
        self,
        token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ValidationResult:
        """
        Validate a magic link token and open a vendor session.

        Never raises for domain or storage failures; they collapse into an
        invalid result.
        """
        now = self._clock()
        try:
            return self._validate(token, now, ip_address, user_agent)
        except (PortalError, StorageError) as e:
            logger.error(f"Token validation failed for {redact_token(token)}: {e}")
            return ValidationResult(valid=False, error=ERROR_INVALID)

    def _validate(
        self,
        token: str,
        now: datetime,
        ip_address: str | None,
        user_agent: str | None,
    ) -> ValidationResult:
        invitation = self.invitations.get_by_token(token) if is_well_formed(token) else None
        if invitation is None:
            self.audit.record(
                None,
                AuditAction.TOKEN_REJECTED,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"reason": ERROR_INVALID, "token_hint": token_hint(token or "")},
            )
            logger.info(f"Rejected unknown token {redact_token(token)}")
            return ValidationResult(valid=False, error=ERROR_INVALID)

        if invitation.is_expired(now):
            return self._reject_expired(invitation, ip_address, user_agent)

        status = invitation.status
        if status == InvitationStatus.REVOKED:
            return self._reject_revoked(invitation, ip_address, user_agent)

        read_only = status == InvitationStatus.COMPLETED
        if not read_only:
            try:
                invitation = self.invitations.transition(
                    token, InvitationEvent.ACCESS, now=now
                )
            except ExpiredError:
                return self._reject_expired(invitation, ip_address, user_agent)
            except TerminalStateError:
                # Completed or revoked between the read and the transition
                current = self.invitations.get(invitation.id)
                if current is None or current.status != InvitationStatus.COMPLETED:
                    return self._reject_revoked(invitation, ip_address, user_agent)
                invitation = current
                read_only = True

            if status == InvitationStatus.PENDING:
                self.assessments.update_assessment_status(
                    invitation.vendor_self_assessment_id, AssessmentStatus.IN_PROGRESS
                )

        assessment = self.assessments.get_assessment(invitation.vendor_self_assessment_id)
        session_token = self.sessions.issue(token, invitation.id)

        self.audit.record(
            invitation.id,
            AuditAction.TOKEN_VALIDATED,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"read_only": read_only},
        )
        logger.info(
            f"Validated token {redact_token(token)} for invitation {invitation.id}"
            + (" (read only)" if read_only else "")
        )

        return ValidationResult(
            valid=True,
            invitation=invitation,
            assessment=assessment,
            vendor_contact_name=invitation.vendor_contact_name,
            read_only=read_only,
            session_token=session_token,
        )

    def _reject_expired(
        self, invitation: Invitation, ip_address: str | None, user_agent: str | None
    ) -> ValidationResult:
        self.audit.record(
            invitation.id,
            AuditAction.TOKEN_EXPIRED,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"expires_at": invitation.token_expires_at.isoformat()},
        )
        logger.info(f"Rejected expired invitation {invitation.id}")
        return ValidationResult(valid=False, error=ERROR_EXPIRED)

    def _reject_revoked(
        self, invitation: Invitation, ip_address: str | None, user_agent: str | None
    ) -> ValidationResult:
        self.audit.record(
            invitation.id,
            AuditAction.TOKEN_REJECTED,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"reason": ERROR_REVOKED},
        )
        logger.info(f"Rejected revoked invitation {invitation.id}")
        return ValidationResult(valid=False, error=ERROR_REVOKED)

    def resolve_session(self, session_value: str | None) -> str:
        """
        Resolve a session value to its access token.

        Raises:
            SessionError: If the session is missing, tampered with, stale, or
                no longer matches its invitation.
        """
        session = self.sessions.open(session_value)
        invitation = self.invitations.get_by_token(session.token)
        if invitation is None or invitation.id != session.invitation_id:
            raise SessionError("Vendor session does not match an invitation")
        return session.token

    def authorize(self, token: str | None = None, session: str | None = None) -> str:
        """
        Work out which access token a vendor call acts with.

        A session alone is enough. When a token is also presented the two
        must agree.

        Raises:
            SessionError: If neither is presented, or they disagree.
        """
        if session:
            session_token = self.resolve_session(session)
            if token and not tokens_match(token, session_token):
                raise SessionError("Vendor session does not match the presented token")
            return session_token
        if token:
            return token
        raise SessionError("No access token or vendor session presented")
