"""
Vendor-scoped access to shadow assessment items.

Every operation is keyed by the vendor's access token and confined to the
invitation's shadow assessment. Items of any other assessment are reported
as not found. State rules:

    list_items   pending, accessed, completed (read only replay)
    update_item  accessed only, checked again after the write. A write that
                 loses to a complete or revoke is undone
    complete     pending or accessed, once
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from csfvendor.errors import (
    AssessmentServiceError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    TerminalStateError,
    ValidationError,
)
from csfvendor.services.base import AssessmentService, ReferenceDataService
from csfvendor.storage.audit_log import AuditLog
from csfvendor.storage.invitation_store import InvitationStore
from csfvendor.storage.models import (
    OPEN_STATUSES,
    AssessmentItem,
    AssessmentStatus,
    AuditAction,
    Invitation,
    InvitationEvent,
    InvitationStatus,
    ItemStatus,
    parse_enum,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"status", "notes"})

MAX_NOTES_LENGTH = 10_000


class VendorItemProxy:
    """
    Reads and edits shadow assessment items on behalf of a vendor.

    Example:
        items = proxy.list_items(token)
        proxy.update_item(token, items[0]["id"], {"status": "compliant"})
        completed_at = proxy.complete(token)
    """

    def __init__(
        self,
        invitations: InvitationStore,
        assessments: AssessmentService,
        reference: ReferenceDataService,
        audit: AuditLog,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.invitations = invitations
        self.assessments = assessments
        self.reference = reference
        self.audit = audit
        self._clock = clock or (lambda: datetime.now(UTC))

    def list_items(self, token: str, function_id: str | None = None) -> list[dict[str, Any]]:
        """
        List the shadow assessment items with their framework context.

        Raises:
            NotFoundError: If the token is unknown.
            ExpiredError: If the invitation has expired.
            TerminalStateError: If the invitation was revoked.
        """
        now = self._clock()
        invitation = self._resolve(token)
        status = invitation.effective_status(now)
        if status == InvitationStatus.EXPIRED:
            raise ExpiredError("Invitation has expired")
        if status == InvitationStatus.REVOKED:
            raise TerminalStateError("Invitation has been revoked")

        items = self.assessments.list_items(
            invitation.vendor_self_assessment_id, function_id=function_id
        )
        if status in OPEN_STATUSES:
            self.invitations.touch(invitation.id, now)

        return [self._enrich(item) for item in items]

    def update_item(
        self,
        token: str,
        item_id: str,
        changes: dict[str, Any],
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """
        Set the status (and optionally notes) of one shadow item.

        Raises:
            ValidationError: If the change set is malformed.
            NotFoundError: If the token or item is unknown, or the item
                belongs to another assessment.
            InvalidStateError: If the invitation is not in the accessed state.
        """
        status, notes = _parse_changes(changes)

        now = self._clock()
        invitation = self._resolve(token)
        self._require_editable(invitation, now)

        item = self.assessments.get_item(item_id)
        if item is None or item.assessment_id != invitation.vendor_self_assessment_id:
            raise NotFoundError("Item not found")

        updated = self.assessments.update_item(item.id, status, notes)

        # The invitation must still be accessed once the write has landed
        current = self.invitations.get(invitation.id)
        if current is None or current.status != InvitationStatus.ACCESSED:
            self._restore_item(item, notes)
            self._require_editable(current or invitation, now)
            raise InvalidStateError("Invitation is no longer open for editing")

        self.invitations.touch(invitation.id, now)

        self.audit.record(
            invitation.id,
            AuditAction.STATUS_UPDATED,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={
                "item_id": item.id,
                "subcategory_id": item.subcategory_id,
                "previous_status": item.status.value,
                "status": updated.status.value,
            },
        )
        logger.debug(
            f"Invitation {invitation.id}: {item.subcategory_id} "
            f"{item.status.value} -> {updated.status.value}"
        )
        return self._enrich(updated)

    def complete(
        self,
        token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> datetime:
        """
        Submit the vendor's answers. One way: the invitation becomes read only.

        Returns:
            The completion time.

        Raises:
            NotFoundError: If the token is unknown.
            ExpiredError: If the invitation has expired.
            TerminalStateError: If it is already completed or revoked.
        """
        now = self._clock()
        invitation = self.invitations.transition(token, InvitationEvent.COMPLETE, now=now)
        completed_at = invitation.completed_at or now

        try:
            self.assessments.update_assessment_status(
                invitation.vendor_self_assessment_id,
                AssessmentStatus.COMPLETED,
                completed_at=completed_at,
            )
        except (AssessmentServiceError, NotFoundError) as e:
            logger.error(
                f"Invitation {invitation.id} completed but shadow assessment "
                f"{invitation.vendor_self_assessment_id} was not updated: {e}"
            )

        self.audit.record(
            invitation.id,
            AuditAction.ASSESSMENT_SUBMITTED,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"completed_at": completed_at.isoformat()},
        )
        logger.info(f"Vendor submitted invitation {invitation.id}")
        return completed_at

    def _resolve(self, token: str) -> Invitation:
        invitation = self.invitations.get_by_token(token)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        return invitation

    def _require_editable(self, invitation: Invitation, now: datetime) -> None:
        status = invitation.effective_status(now)
        if status == InvitationStatus.EXPIRED:
            raise ExpiredError("Invitation has expired")
        if status == InvitationStatus.COMPLETED:
            raise TerminalStateError("Assessment has already been submitted")
        if status == InvitationStatus.REVOKED:
            raise TerminalStateError("Invitation has been revoked")
        if status == InvitationStatus.PENDING:
            raise InvalidStateError("Open the invitation link before editing items")

    def _restore_item(self, item: AssessmentItem, notes: str | None) -> None:
        previous_notes = None if notes is None else item.notes or ""
        self.assessments.update_item(item.id, item.status, previous_notes)
        logger.warning(
            f"Invitation closed while {item.subcategory_id} was being written, "
            f"restored {item.status.value}"
        )

    def _enrich(self, item: AssessmentItem) -> dict[str, Any]:
        data = item.to_dict()
        data.update(self.reference.describe(item.subcategory_id))
        return data


def _parse_changes(changes: Any) -> tuple[ItemStatus, str | None]:
    if not isinstance(changes, dict):
        raise ValidationError("Request body must be a JSON object")

    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    if "status" not in changes:
        raise ValidationError("status is required")

    status = parse_enum(ItemStatus, changes["status"], "status")

    notes = changes.get("notes")
    if notes is not None:
        if not isinstance(notes, str):
            raise ValidationError("notes must be a string")
        if len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"notes must be at most {MAX_NOTES_LENGTH} characters")
    return status, notes
