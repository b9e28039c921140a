"""
Data models for invitation and assessment storage.

This module defines the enums and dataclasses used to represent vendor
invitations, assessments, assessment items and audit events.

Schema Design Decisions:
    - IDs are UUIDs stored as strings for portability
    - Timestamps are timezone-aware UTC datetimes, stored as ISO strings
    - Access tokens are never stored; only their SHA-256 hash and a hint
    - The "expired" invitation status is derived at read time, never stored
    - JSON metadata is stored as TEXT in SQLite
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from csfvendor.errors import ValidationError


class InvitationStatus(str, Enum):
    """Lifecycle status of a vendor invitation."""

    PENDING = "pending"
    ACCESSED = "accessed"
    COMPLETED = "completed"
    EXPIRED = "expired"
    REVOKED = "revoked"


# Statuses that hold the single active-invitation slot of an assessment
OPEN_STATUSES = frozenset({InvitationStatus.PENDING, InvitationStatus.ACCESSED})

# Stored statuses that accept no further events
TERMINAL_STATUSES = frozenset({InvitationStatus.COMPLETED, InvitationStatus.REVOKED})


class InvitationEvent(str, Enum):
    """Events that drive invitation state transitions."""

    ACCESS = "access"
    COMPLETE = "complete"
    REVOKE = "revoke"


class ItemStatus(str, Enum):
    """Per-control answer of an assessment item."""

    COMPLIANT = "compliant"
    PARTIAL = "partial"
    NON_COMPLIANT = "non_compliant"
    NOT_APPLICABLE = "not_applicable"
    NOT_ASSESSED = "not_assessed"


class AssessmentType(str, Enum):
    """Who an assessment is about."""

    ORGANIZATION = "organization"
    VENDOR = "vendor"


class AssessmentStatus(str, Enum):
    """Workflow status of an assessment."""

    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class AuditAction(str, Enum):
    """Actions recorded in the vendor audit log."""

    INVITATION_ISSUED = "invitation_issued"
    TOKEN_VALIDATED = "token_validated"
    TOKEN_REJECTED = "token_rejected"
    TOKEN_EXPIRED = "token_expired"
    STATUS_UPDATED = "status_updated"
    ASSESSMENT_SUBMITTED = "assessment_submitted"
    RATE_LIMITED = "rate_limited"
    TOKEN_REVOKED = "token_revoked"


def parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    """
    Convert a raw value into a member of a closed enum.

    Raises:
        ValidationError: If the value is not one of the enum's values.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(str(m.value) for m in enum_cls)
        raise ValidationError(
            f"Invalid {field_name}: {value!r}. Must be one of: {allowed}"
        ) from e


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class Invitation:
    """
    A vendor invitation to answer a shadow self-assessment.

    Attributes:
        id: Unique identifier.
        organization_assessment_id: The organization's vendor assessment.
        vendor_self_assessment_id: The shadow assessment the vendor fills in.
        vendor_id: Vendor the assessment is about.
        organization_id: Owning organization.
        vendor_contact_email: Recipient of the magic link.
        vendor_contact_name: Optional recipient name.
        message: Optional note shown to the vendor.
        token_hash: SHA-256 hex digest of the access token.
        token_hint: Leading characters of the token for display and logs.
        token_expires_at: Absolute expiry of the access token.
        status: Stored status (never "expired").
        sent_at: When the invitation was issued.
        accessed_at: First successful validation.
        last_accessed_at: Most recent vendor activity.
        completed_at: When the vendor submitted.
        revoked_at: When the organization revoked the link.
        revoked_by: Who revoked the link.

    Database Table: vendor_invitations
        - active_assessment_id TEXT UNIQUE: set to organization_assessment_id
          while the invitation is pending or accessed, NULL otherwise
    """

    id: str
    organization_assessment_id: str
    vendor_self_assessment_id: str
    vendor_id: str
    organization_id: str
    vendor_contact_email: str
    token_hash: str
    token_hint: str
    token_expires_at: datetime
    status: InvitationStatus
    sent_at: datetime
    created_at: datetime
    updated_at: datetime
    vendor_contact_name: str | None = None
    message: str | None = None
    accessed_at: datetime | None = None
    last_accessed_at: datetime | None = None
    completed_at: datetime | None = None
    revoked_at: datetime | None = None
    revoked_by: str | None = None

    @classmethod
    def create(
        cls,
        organization_assessment_id: str,
        vendor_self_assessment_id: str,
        vendor_id: str,
        organization_id: str,
        vendor_contact_email: str,
        token_hash: str,
        token_hint: str,
        token_expires_at: datetime,
        vendor_contact_name: str | None = None,
        message: str | None = None,
        now: datetime | None = None,
    ) -> Invitation:
        """Create a new pending Invitation with auto-generated ID and timestamps."""
        now = now or datetime.now(UTC)
        return cls(
            id=str(uuid.uuid4()),
            organization_assessment_id=organization_assessment_id,
            vendor_self_assessment_id=vendor_self_assessment_id,
            vendor_id=vendor_id,
            organization_id=organization_id,
            vendor_contact_email=vendor_contact_email,
            vendor_contact_name=vendor_contact_name,
            message=message,
            token_hash=token_hash,
            token_hint=token_hint,
            token_expires_at=token_expires_at,
            status=InvitationStatus.PENDING,
            sent_at=now,
            created_at=now,
            updated_at=now,
        )

    def is_expired(self, now: datetime) -> bool:
        """Check whether the token is past its expiry at the given time."""
        return now > self.token_expires_at

    def effective_status(self, now: datetime) -> InvitationStatus:
        """
        Status as observed at the given time.

        Any invitation past its expiry reads as expired, whatever its stored
        status. The stored status is never rewritten.
        """
        if self.is_expired(now):
            return InvitationStatus.EXPIRED
        return self.status

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        """Convert to dictionary for API responses. Never includes the token."""
        data: dict[str, Any] = {
            "id": self.id,
            "organization_assessment_id": self.organization_assessment_id,
            "vendor_self_assessment_id": self.vendor_self_assessment_id,
            "vendor_id": self.vendor_id,
            "organization_id": self.organization_id,
            "vendor_contact_email": self.vendor_contact_email,
            "vendor_contact_name": self.vendor_contact_name,
            "message": self.message,
            "token_hint": self.token_hint,
            "token_expires_at": _format_datetime(self.token_expires_at),
            "status": self.status.value,
            "sent_at": _format_datetime(self.sent_at),
            "accessed_at": _format_datetime(self.accessed_at),
            "last_accessed_at": _format_datetime(self.last_accessed_at),
            "completed_at": _format_datetime(self.completed_at),
            "revoked_at": _format_datetime(self.revoked_at),
            "revoked_by": self.revoked_by,
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
        }
        if now is not None:
            data["status"] = self.effective_status(now).value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Invitation:
        """Create from a database row or dictionary."""
        return cls(
            id=data["id"],
            organization_assessment_id=data["organization_assessment_id"],
            vendor_self_assessment_id=data["vendor_self_assessment_id"],
            vendor_id=data["vendor_id"],
            organization_id=data["organization_id"],
            vendor_contact_email=data["vendor_contact_email"],
            vendor_contact_name=data.get("vendor_contact_name"),
            message=data.get("message"),
            token_hash=data["token_hash"],
            token_hint=data["token_hint"],
            token_expires_at=_parse_datetime(data["token_expires_at"]),
            status=InvitationStatus(data["status"]),
            sent_at=_parse_datetime(data["sent_at"]),
            accessed_at=_parse_datetime(data.get("accessed_at")),
            last_accessed_at=_parse_datetime(data.get("last_accessed_at")),
            completed_at=_parse_datetime(data.get("completed_at")),
            revoked_at=_parse_datetime(data.get("revoked_at")),
            revoked_by=data.get("revoked_by"),
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
        )


@dataclass
class Assessment:
    """
    A control assessment of an organization or one of its vendors.

    Vendor shadow assessments are linked to the organization's assessment
    through linked_assessment_id, in both directions.
    """

    id: str
    organization_id: str
    assessment_type: AssessmentType
    name: str
    status: AssessmentStatus
    created_at: datetime
    updated_at: datetime
    vendor_id: str | None = None
    description: str | None = None
    linked_assessment_id: str | None = None
    completed_at: datetime | None = None

    @classmethod
    def create(
        cls,
        organization_id: str,
        assessment_type: AssessmentType,
        name: str,
        vendor_id: str | None = None,
        description: str | None = None,
        status: AssessmentStatus = AssessmentStatus.DRAFT,
        linked_assessment_id: str | None = None,
        now: datetime | None = None,
    ) -> Assessment:
        """Create a new Assessment with auto-generated ID and timestamps."""
        now = now or datetime.now(UTC)
        return cls(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            assessment_type=assessment_type,
            name=name,
            status=status,
            vendor_id=vendor_id,
            description=description,
            linked_assessment_id=linked_assessment_id,
            created_at=now,
            updated_at=now,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "assessment_type": self.assessment_type.value,
            "vendor_id": self.vendor_id,
            "name": self.name,
            "description": self.description,
            "status": self.status.value,
            "linked_assessment_id": self.linked_assessment_id,
            "completed_at": _format_datetime(self.completed_at),
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Assessment:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            organization_id=data["organization_id"],
            assessment_type=parse_enum(
                AssessmentType, data["assessment_type"], "assessment_type"
            ),
            vendor_id=data.get("vendor_id"),
            name=data["name"],
            description=data.get("description"),
            status=parse_enum(AssessmentStatus, data["status"], "status"),
            linked_assessment_id=data.get("linked_assessment_id"),
            completed_at=_parse_datetime(data.get("completed_at")),
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
        )


@dataclass
class AssessmentItem:
    """
    One control answer within an assessment.

    Attributes:
        id: Unique identifier.
        assessment_id: Owning assessment.
        subcategory_id: CSF subcategory key (e.g., "PR.AA-01").
        status: Answer for the control.
        notes: Free-text justification.
    """

    id: str
    assessment_id: str
    subcategory_id: str
    status: ItemStatus
    created_at: datetime
    updated_at: datetime
    notes: str | None = None

    @classmethod
    def create(
        cls,
        assessment_id: str,
        subcategory_id: str,
        status: ItemStatus = ItemStatus.NOT_ASSESSED,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> AssessmentItem:
        """Create a new AssessmentItem with auto-generated ID and timestamps."""
        now = now or datetime.now(UTC)
        return cls(
            id=str(uuid.uuid4()),
            assessment_id=assessment_id,
            subcategory_id=subcategory_id,
            status=status,
            notes=notes,
            created_at=now,
            updated_at=now,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "assessment_id": self.assessment_id,
            "subcategory_id": self.subcategory_id,
            "status": self.status.value,
            "notes": self.notes,
            "created_at": _format_datetime(self.created_at),
            "updated_at": _format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssessmentItem:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            assessment_id=data["assessment_id"],
            subcategory_id=data["subcategory_id"],
            status=parse_enum(ItemStatus, data["status"], "status"),
            notes=data.get("notes"),
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
        )


@dataclass
class AuditEvent:
    """A single entry of the vendor audit log."""

    id: str
    invitation_id: str | None
    action: AuditAction
    created_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        invitation_id: str | None,
        action: AuditAction,
        ip_address: str | None = None,
        user_agent: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Create a new AuditEvent with auto-generated ID and timestamp."""
        return cls(
            id=str(uuid.uuid4()),
            invitation_id=invitation_id,
            action=action,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata or {},
            created_at=datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "invitation_id": self.invitation_id,
            "action": self.action.value,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "metadata": self.metadata,
            "created_at": _format_datetime(self.created_at),
        }
