"""
Invitation issuance and revocation.

Issuing an invitation for an organization's vendor assessment:
    1. Checks the assessment is a vendor assessment with a vendor attached
    2. Generates a 256-bit access token and stores the invitation with
       only its hash, which claims the assessment's single active slot
    3. Creates (or, with reissue_policy "reuse", reopens) the vendor's
       shadow assessment holding one item per control. If that fails the
       invitation is revoked again
    4. Returns the token and the magic link to deliver to the vendor

Only one open invitation may exist per assessment. Issuing again requires
revoking the current invitation first, or waiting for it to expire or be
completed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from csfvendor.errors import ConflictError, NotFoundError, PortalError, ValidationError
from csfvendor.services.base import AssessmentService, ReferenceDataService
from csfvendor.storage.audit_log import AuditLog
from csfvendor.storage.database import StorageError
from csfvendor.storage.invitation_store import InvitationStore
from csfvendor.storage.models import (
    Assessment,
    AssessmentItem,
    AssessmentStatus,
    AssessmentType,
    AuditAction,
    Invitation,
    InvitationEvent,
)
from csfvendor.tokens import (
    build_magic_link,
    generate_token,
    hash_token,
    redact_token,
    token_hint,
)

logger = logging.getLogger(__name__)

SHADOW_NAME_PREFIX = "[Vendor Response] "

# Recorded as revoked_by when issuance is rolled back
SYSTEM_ACTOR = "system"

# Expiry presets offered by the UI. Any positive number of days is accepted.
EXPIRY_PRESETS = (7, 14, 30, 60, 90)

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class IssuedInvitation:
    """
    Result of issuing an invitation.

    The access token is returned exactly once, here. It cannot be
    recovered later.
    """

    invitation_id: str
    access_token: str
    magic_link: str
    expires_at: datetime
    vendor_email: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "invitation_id": self.invitation_id,
            "access_token": self.access_token,
            "magic_link": self.magic_link,
            "expires_at": self.expires_at.isoformat(),
            "vendor_email": self.vendor_email,
        }


class TokenIssuer:
    """
    Issues and revokes vendor invitations.

    Example:
        issuer = TokenIssuer(invitations, assessments, reference, audit,
                             base_url="https://app.example.com")
        issued = issuer.issue(assessment_id, "security@vendor.example")
        send_email(issued.vendor_email, issued.magic_link)
    """

    def __init__(
        self,
        invitations: InvitationStore,
        assessments: AssessmentService,
        reference: ReferenceDataService,
        audit: AuditLog,
        base_url: str,
        default_expiry_days: int = 7,
        reissue_policy: str = "fresh",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.invitations = invitations
        self.assessments = assessments
        self.reference = reference
        self.audit = audit
        self.base_url = base_url
        self.default_expiry_days = default_expiry_days
        self.reissue_policy = reissue_policy
        self._clock = clock or (lambda: datetime.now(UTC))

    def issue(
        self,
        organization_assessment_id: str,
        vendor_contact_email: str,
        vendor_contact_name: str | None = None,
        expiry_days: int | None = None,
        message: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedInvitation:
        """
        Issue an invitation for an organization's vendor assessment.

        Args:
            organization_assessment_id: The assessment the vendor answers.
            vendor_contact_email: Recipient of the magic link.
            vendor_contact_name: Optional recipient name.
            expiry_days: Days until the link expires. Defaults to config.
            message: Optional note shown to the vendor.

        Returns:
            IssuedInvitation with the access token and magic link.

        Raises:
            NotFoundError: If the assessment does not exist.
            ValidationError: If the assessment is not a vendor assessment,
                has no vendor, or the email or expiry is invalid.
            ConflictError: If an active invitation already exists.
        """
        email = _validate_email(vendor_contact_email)
        days = self._validate_expiry(expiry_days)
        now = self._clock()

        assessment = self.assessments.get_assessment(organization_assessment_id)
        if assessment is None:
            raise NotFoundError(f"Assessment not found: {organization_assessment_id}")
        if assessment.assessment_type != AssessmentType.VENDOR:
            raise ValidationError("Invitations can only be sent for vendor assessments")
        if not assessment.vendor_id:
            raise ValidationError("Assessment is not linked to a vendor")

        if self.invitations.get_active_for_assessment(assessment.id, now) is not None:
            raise ConflictError(
                f"Assessment {assessment.id} already has an active invitation. "
                "Revoke it before issuing a new one."
            )

        shadow, reused = self._plan_shadow_assessment(assessment, now)

        token = generate_token()
        expires_at = now + timedelta(days=days)

        invitation = Invitation.create(
            organization_assessment_id=assessment.id,
            vendor_self_assessment_id=shadow.id,
            vendor_id=assessment.vendor_id,
            organization_id=assessment.organization_id,
            vendor_contact_email=email,
            vendor_contact_name=(vendor_contact_name or "").strip() or None,
            message=message or None,
            token_hash=hash_token(token),
            token_hint=token_hint(token),
            token_expires_at=expires_at,
            now=now,
        )
        # The insert claims the active slot before the shadow is written
        self.invitations.insert(invitation)

        try:
            self._prepare_shadow_assessment(assessment, shadow, reused, now)
        except (PortalError, StorageError) as e:
            logger.error(
                f"Could not prepare shadow assessment {shadow.id} for invitation "
                f"{invitation.id}: {e}"
            )
            self.invitations.transition_by_id(
                invitation.id, InvitationEvent.REVOKE, now=now, actor=SYSTEM_ACTOR
            )
            raise

        self.audit.record(
            invitation.id,
            AuditAction.INVITATION_ISSUED,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={
                "vendor_email": email,
                "expiry_days": days,
                "expires_at": expires_at.isoformat(),
                "token_hint": invitation.token_hint,
            },
        )
        logger.info(
            f"Issued invitation {invitation.id} for assessment {assessment.id} "
            f"(token {redact_token(token)}, expires {expires_at.isoformat()})"
        )

        return IssuedInvitation(
            invitation_id=invitation.id,
            access_token=token,
            magic_link=build_magic_link(self.base_url, token),
            expires_at=expires_at,
            vendor_email=email,
        )

    def revoke(
        self,
        invitation_id: str,
        revoked_by: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Invitation:
        """
        Revoke an open invitation so its link stops working.

        Raises:
            NotFoundError: If the invitation does not exist.
            TerminalStateError: If it is already completed, revoked or expired.
        """
        invitation = self.invitations.transition_by_id(
            invitation_id,
            InvitationEvent.REVOKE,
            now=self._clock(),
            actor=revoked_by,
        )
        self.audit.record(
            invitation.id,
            AuditAction.TOKEN_REVOKED,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"revoked_by": revoked_by} if revoked_by else None,
        )
        logger.info(f"Revoked invitation {invitation.id}")
        return invitation

    def _validate_expiry(self, expiry_days: Any) -> int:
        if expiry_days is None:
            return self.default_expiry_days
        if isinstance(expiry_days, bool) or not isinstance(expiry_days, int):
            raise ValidationError("expiry_days must be a whole number of days")
        if expiry_days < 1:
            raise ValidationError("expiry_days must be at least 1")
        return expiry_days

    def _plan_shadow_assessment(
        self, assessment: Assessment, now: datetime
    ) -> tuple[Assessment, bool]:
        """
        Pick the shadow assessment the new invitation points at.

        Returns the previous shadow and True under the "reuse" policy when one
        exists, otherwise an unsaved new shadow and False. Nothing is written.
        """
        if self.reissue_policy == "reuse":
            previous = self.invitations.get_by_assessment(assessment.id)
            if previous is not None:
                shadow = self.assessments.get_assessment(previous.vendor_self_assessment_id)
                if shadow is not None:
                    logger.info(
                        f"Reusing shadow assessment {shadow.id} from invitation "
                        f"{previous.id}"
                    )
                    return shadow, True

        shadow = Assessment.create(
            organization_id=assessment.organization_id,
            assessment_type=AssessmentType.VENDOR,
            name=f"{SHADOW_NAME_PREFIX}{assessment.name}",
            vendor_id=assessment.vendor_id,
            description=f"Vendor self-assessment response for {assessment.name}",
            status=AssessmentStatus.DRAFT,
            linked_assessment_id=assessment.id,
            now=now,
        )
        return shadow, False

    def _prepare_shadow_assessment(
        self, assessment: Assessment, shadow: Assessment, reused: bool, now: datetime
    ) -> None:
        if reused:
            self.assessments.update_assessment_status(shadow.id, AssessmentStatus.IN_PROGRESS)
            return
        self._create_shadow_assessment(assessment, shadow, now)

    def _create_shadow_assessment(
        self, assessment: Assessment, shadow: Assessment, now: datetime
    ) -> None:
        """
        Store the clone of the organization assessment as an empty vendor response.

        The clone covers the same controls as the organization assessment,
        or the full catalog when the organization has no items yet. Every
        item starts as not_assessed.
        """
        self.assessments.create_assessment(shadow)
        self.assessments.link_assessments(assessment.id, shadow.id)

        subcategory_ids = [
            item.subcategory_id for item in self.assessments.list_items(assessment.id)
        ]
        if not subcategory_ids:
            subcategory_ids = self.reference.subcategory_ids()

        seen: set[str] = set()
        items = []
        for subcategory_id in subcategory_ids:
            if subcategory_id in seen:
                continue
            seen.add(subcategory_id)
            items.append(AssessmentItem.create(shadow.id, subcategory_id, now=now))
        self.assessments.create_items(items)

        logger.info(
            f"Created shadow assessment {shadow.id} with {len(items)} items "
            f"for assessment {assessment.id}"
        )


def _validate_email(email: str | None) -> str:
    email = (email or "").strip()
    if not email:
        raise ValidationError("vendor_contact_email is required")
    if not _EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid email address: {email}")
    return email
