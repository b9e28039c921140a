"""
Vendor audit log.

Records every security-relevant event on the public vendor surface:
token validations and rejections, item updates, submissions, revocations
and rate limiting. Recording is best effort. A failed write is logged
and never propagates into the request that triggered it.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any

from csfvendor.storage.database import Database
from csfvendor.storage.models import AuditAction, AuditEvent

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Append-only audit trail for vendor invitations.

    Example:
        audit = AuditLog(Database(data_dir))
        audit.record(invitation.id, AuditAction.TOKEN_VALIDATED, ip_address="10.0.0.5")
        events = audit.list_events(invitation.id)
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    def record(
        self,
        invitation_id: str | None,
        action: AuditAction,
        ip_address: str | None = None,
        user_agent: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEvent | None:
        """
        Append an event to the audit log.

        Metadata must not contain tokens.

        Returns:
            The recorded event, or None if the write failed.
        """
        event = AuditEvent.create(
            invitation_id=invitation_id,
            action=action,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=metadata,
        )
        try:
            with self.database.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO vendor_audit_log (
                        id, invitation_id, action, ip_address, user_agent,
                        metadata_json, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        event.id,
                        event.invitation_id,
                        event.action.value,
                        event.ip_address,
                        event.user_agent,
                        json.dumps(event.metadata, default=str) if event.metadata else None,
                        event.created_at.isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            logger.warning(f"Failed to record audit event {action.value}: {e}")
            return None
        return event

    def list_events(
        self, invitation_id: str, action: AuditAction | None = None
    ) -> list[AuditEvent]:
        """Events for an invitation in chronological order."""
        sql = "SELECT * FROM vendor_audit_log WHERE invitation_id = ?"
        params: list[str] = [invitation_id]
        if action is not None:
            sql += " AND action = ?"
            params.append(action.value)
        sql += " ORDER BY created_at, rowid"

        with self.database.connection() as conn:
            cursor = conn.execute(sql, params)
            return [
                AuditEvent(
                    id=row["id"],
                    invitation_id=row["invitation_id"],
                    action=AuditAction(row["action"]),
                    ip_address=row["ip_address"],
                    user_agent=row["user_agent"],
                    metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else {},
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
                for row in cursor.fetchall()
            ]
