"""
Persistent storage for invitations, assessments and the vendor audit trail.

All stores share one SQLite database (see Database). The schema and
helpers follow the same connection-per-operation pattern throughout.
"""

from csfvendor.storage.assessment_store import AssessmentStore
from csfvendor.storage.audit_log import AuditLog
from csfvendor.storage.database import SCHEMA_VERSION, Database, StorageError
from csfvendor.storage.invitation_store import InvitationStore
from csfvendor.storage.models import (
    Assessment,
    AssessmentItem,
    AssessmentStatus,
    AssessmentType,
    AuditAction,
    AuditEvent,
    Invitation,
    InvitationEvent,
    InvitationStatus,
    ItemStatus,
)
from csfvendor.storage.rate_limits import RateLimitDecision, RateLimiter

__all__ = [
    # Stores
    "Database",
    "InvitationStore",
    "AssessmentStore",
    "AuditLog",
    "RateLimiter",
    "RateLimitDecision",
    # Models
    "Invitation",
    "InvitationEvent",
    "InvitationStatus",
    "Assessment",
    "AssessmentItem",
    "AssessmentStatus",
    "AssessmentType",
    "AuditAction",
    "AuditEvent",
    "ItemStatus",
    # Errors
    "StorageError",
    "SCHEMA_VERSION",
]
