"""
Invitation storage and state machine.

This module provides the InvitationStore class which persists vendor
invitations and applies their lifecycle transitions:

    pending  --access-->   accessed   (sets accessed_at)
    accessed --access-->   accessed   (no-op apart from last_accessed_at)
    pending  --complete--> completed
    accessed --complete--> completed
    pending  --revoke-->   revoked
    accessed --revoke-->   revoked

Completed and revoked are terminal. An open invitation past its expiry is
terminal as well, without its stored status being rewritten.

Concurrency:
    Transitions are compare-and-set updates guarded on the status that was
    read. A lost race is retried once against the fresh row; a second loss
    raises ConflictError. The single active invitation per assessment is a
    UNIQUE column, so it holds across processes sharing the database.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from csfvendor.errors import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    TerminalStateError,
)
from csfvendor.storage.database import Database, StorageError
from csfvendor.storage.models import (
    OPEN_STATUSES,
    Invitation,
    InvitationEvent,
    InvitationStatus,
    parse_enum,
)
from csfvendor.tokens import hash_token

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Compare-and-set attempts per transition
CAS_ATTEMPTS = 2


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class InvitationStore:
    """
    Persistent storage for vendor invitations.

    Example:
        store = InvitationStore(Database(data_dir))
        store.insert(invitation)

        invitation = store.transition(token, InvitationEvent.ACCESS)
        latest = store.get_by_assessment(assessment_id)

    Invitations are never deleted.
    """

    def __init__(self, database: Database, clock: Clock | None = None) -> None:
        self.database = database
        self._clock = clock or _utc_now

    def now(self) -> datetime:
        return self._clock()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert(self, invitation: Invitation) -> Invitation:
        """
        Insert a new pending invitation.

        Any earlier invitation for the same assessment that is logically
        expired gives up its active slot first (its stored status is left
        as is). If a live invitation still holds the slot the insert fails.

        Raises:
            ConflictError: If the assessment already has an active invitation.
            StorageError: If the database write fails.
        """
        now = self.now()
        assessment_id = invitation.organization_assessment_id

        with self.database.connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE TRANSACTION")

                holder = conn.execute(
                    "SELECT * FROM vendor_invitations WHERE active_assessment_id = ?",
                    (assessment_id,),
                ).fetchone()
                if holder is not None:
                    current = Invitation.from_dict(dict(holder))
                    if current.is_expired(now):
                        conn.execute(
                            "UPDATE vendor_invitations SET active_assessment_id = NULL "
                            "WHERE id = ?",
                            (current.id,),
                        )
                        logger.info(
                            f"Released active slot of expired invitation {current.id}"
                        )

                conn.execute(
                    """
                    INSERT INTO vendor_invitations (
                        id, organization_assessment_id, vendor_self_assessment_id,
                        vendor_id, organization_id, vendor_contact_email,
                        vendor_contact_name, message, token_hash, token_hint,
                        token_expires_at, status, active_assessment_id, sent_at,
                        accessed_at, last_accessed_at, completed_at, revoked_at,
                        revoked_by, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        invitation.id,
                        invitation.organization_assessment_id,
                        invitation.vendor_self_assessment_id,
                        invitation.vendor_id,
                        invitation.organization_id,
                        invitation.vendor_contact_email,
                        invitation.vendor_contact_name,
                        invitation.message,
                        invitation.token_hash,
                        invitation.token_hint,
                        invitation.token_expires_at.isoformat(),
                        invitation.status.value,
                        assessment_id if invitation.status in OPEN_STATUSES else None,
                        invitation.sent_at.isoformat(),
                        _iso(invitation.accessed_at),
                        _iso(invitation.last_accessed_at),
                        _iso(invitation.completed_at),
                        _iso(invitation.revoked_at),
                        invitation.revoked_by,
                        invitation.created_at.isoformat(),
                        invitation.updated_at.isoformat(),
                    ),
                )

                conn.execute("COMMIT")
                logger.info(
                    f"Stored invitation {invitation.id} for assessment {assessment_id}"
                )
                return invitation

            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise ConflictError(
                    f"Assessment {assessment_id} already has an active invitation. "
                    "Revoke it before issuing a new one."
                ) from e
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                logger.error(f"Failed to store invitation: {e}")
                raise StorageError(f"Failed to store invitation: {e}") from e

    def transition(
        self,
        token: str,
        event: InvitationEvent | str,
        now: datetime | None = None,
        actor: str | None = None,
    ) -> Invitation:
        """
        Apply a lifecycle event to the invitation identified by a token.

        Args:
            token: The raw access token.
            event: access, complete or revoke.
            now: Evaluation time. Defaults to the store clock.
            actor: Who revoked the invitation (revoke only).

        Returns:
            The updated invitation.

        Raises:
            NotFoundError: If no invitation matches the token.
            ExpiredError: If the invitation is past its expiry.
            TerminalStateError: If the invitation is completed or revoked.
            ConflictError: If the compare-and-set lost twice.
        """
        invitation = self.get_by_token(token)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        return self._apply(invitation.id, event, now, actor)

    def transition_by_id(
        self,
        invitation_id: str,
        event: InvitationEvent | str,
        now: datetime | None = None,
        actor: str | None = None,
    ) -> Invitation:
        """Apply a lifecycle event by invitation ID (organization-side revoke)."""
        return self._apply(invitation_id, event, now, actor)

    def touch(self, invitation_id: str, now: datetime | None = None) -> None:
        """Refresh last_accessed_at without changing status."""
        now = now or self.now()
        with self.database.connection() as conn:
            try:
                conn.execute(
                    "UPDATE vendor_invitations SET last_accessed_at = ? WHERE id = ?",
                    (now.isoformat(), invitation_id),
                )
            except sqlite3.Error as e:
                raise StorageError(f"Failed to touch invitation: {e}") from e

    def _apply(
        self,
        invitation_id: str,
        event: InvitationEvent | str,
        now: datetime | None,
        actor: str | None,
    ) -> Invitation:
        event = parse_enum(InvitationEvent, event, "event")
        now = now or self.now()

        for attempt in range(CAS_ATTEMPTS):
            current = self.get(invitation_id)
            if current is None:
                raise NotFoundError("Invitation not found")

            effective = current.effective_status(now)
            if effective == InvitationStatus.EXPIRED:
                raise ExpiredError("Invitation has expired")
            if effective not in OPEN_STATUSES:
                raise TerminalStateError(f"Invitation is already {effective.value}")

            assignments = self._assignments_for(current, event, now, actor)
            if self._compare_and_set(current, assignments):
                updated = self.get(invitation_id)
                assert updated is not None
                if updated.status != current.status:
                    logger.info(
                        f"Invitation {invitation_id}: {current.status.value} "
                        f"-> {updated.status.value}"
                    )
                return updated

            logger.debug(
                f"Lost compare-and-set on invitation {invitation_id} "
                f"(attempt {attempt + 1}/{CAS_ATTEMPTS})"
            )

        raise ConflictError("Invitation was modified concurrently, try again")

    def _assignments_for(
        self,
        current: Invitation,
        event: InvitationEvent,
        now: datetime,
        actor: str | None,
    ) -> dict[str, Any]:
        stamp = now.isoformat()
        if event == InvitationEvent.ACCESS:
            return {
                "status": InvitationStatus.ACCESSED.value,
                "accessed_at": _iso(current.accessed_at) or stamp,
                "last_accessed_at": stamp,
                "updated_at": stamp,
            }
        if event == InvitationEvent.COMPLETE:
            return {
                "status": InvitationStatus.COMPLETED.value,
                "completed_at": stamp,
                "active_assessment_id": None,
                "updated_at": stamp,
            }
        return {
            "status": InvitationStatus.REVOKED.value,
            "revoked_at": stamp,
            "revoked_by": actor,
            "active_assessment_id": None,
            "updated_at": stamp,
        }

    def _compare_and_set(self, current: Invitation, assignments: dict[str, Any]) -> bool:
        columns = ", ".join(f"{column} = ?" for column in assignments)
        params = [*assignments.values(), current.id, current.status.value]
        with self.database.connection() as conn:
            try:
                cursor = conn.execute(
                    f"UPDATE vendor_invitations SET {columns} "
                    "WHERE id = ? AND status = ?",
                    params,
                )
            except sqlite3.Error as e:
                logger.error(f"Failed to update invitation {current.id}: {e}")
                raise StorageError(f"Failed to update invitation: {e}") from e
            return cursor.rowcount == 1

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, invitation_id: str) -> Invitation | None:
        """Get an invitation by ID."""
        return self._fetch_one(
            "SELECT * FROM vendor_invitations WHERE id = ?", (invitation_id,)
        )

    def get_by_token(self, token: str) -> Invitation | None:
        """Get an invitation by its raw access token."""
        if not token:
            return None
        return self._fetch_one(
            "SELECT * FROM vendor_invitations WHERE token_hash = ?",
            (hash_token(token),),
        )

    def get_by_assessment(self, assessment_id: str) -> Invitation | None:
        """Get the most recent invitation for an organization assessment."""
        return self._fetch_one(
            """
            SELECT * FROM vendor_invitations
            WHERE organization_assessment_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (assessment_id,),
        )

    def get_active_for_assessment(
        self, assessment_id: str, now: datetime | None = None
    ) -> Invitation | None:
        """Get the open, unexpired invitation for an assessment, if any."""
        now = now or self.now()
        invitation = self._fetch_one(
            "SELECT * FROM vendor_invitations WHERE active_assessment_id = ?",
            (assessment_id,),
        )
        if invitation is None or invitation.is_expired(now):
            return None
        return invitation

    def list_for_assessment(self, assessment_id: str) -> list[Invitation]:
        """All invitations ever issued for an assessment, newest first."""
        with self.database.connection() as conn:
            cursor = conn.execute(
                """
                SELECT * FROM vendor_invitations
                WHERE organization_assessment_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (assessment_id,),
            )
            return [Invitation.from_dict(dict(row)) for row in cursor.fetchall()]

    def count_by_status(self, now: datetime | None = None) -> dict[str, int]:
        """Invitation counts keyed by effective status."""
        now = now or self.now()
        counts = {status.value: 0 for status in InvitationStatus}
        with self.database.connection() as conn:
            cursor = conn.execute("SELECT * FROM vendor_invitations")
            for row in cursor.fetchall():
                invitation = Invitation.from_dict(dict(row))
                counts[invitation.effective_status(now).value] += 1
        return counts

    def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> Invitation | None:
        with self.database.connection() as conn:
            row = conn.execute(sql, params).fetchone()
            if row is None:
                return None
            return Invitation.from_dict(dict(row))
