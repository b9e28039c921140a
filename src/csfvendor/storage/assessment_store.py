"""
SQLite implementation of the assessment service.

Assessments and their items are owned by the wider assessment product.
This store provides the subset the vendor portal needs so the portal can
run standalone and in tests; deployments that keep assessments elsewhere
use AssessmentServiceClient instead.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import UTC, datetime

from csfvendor.errors import NotFoundError
from csfvendor.storage.database import Database, StorageError
from csfvendor.storage.models import (
    Assessment,
    AssessmentItem,
    AssessmentStatus,
    ItemStatus,
    parse_enum,
)

logger = logging.getLogger(__name__)


class AssessmentStore:
    """
    Persistent storage for assessments and assessment items.

    Example:
        store = AssessmentStore(Database(data_dir))
        store.create_assessment(assessment)
        store.create_items(items)

        items = store.list_items(assessment.id, function_id="PR")
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    def get_assessment(self, assessment_id: str) -> Assessment | None:
        """Get an assessment by ID."""
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT * FROM assessments WHERE id = ?", (assessment_id,)
            ).fetchone()
            if row is None:
                return None
            return Assessment.from_dict(dict(row))

    def list_assessments(self, organization_id: str | None = None) -> list[Assessment]:
        """List assessments, optionally for one organization."""
        sql = "SELECT * FROM assessments"
        params: tuple[str, ...] = ()
        if organization_id:
            sql += " WHERE organization_id = ?"
            params = (organization_id,)
        sql += " ORDER BY created_at"
        with self.database.connection() as conn:
            cursor = conn.execute(sql, params)
            return [Assessment.from_dict(dict(row)) for row in cursor.fetchall()]

    def create_assessment(self, assessment: Assessment) -> Assessment:
        """
        Insert an assessment.

        Raises:
            StorageError: If the insert fails.
        """
        with self.database.connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO assessments (
                        id, organization_id, assessment_type, vendor_id, name,
                        description, status, linked_assessment_id, completed_at,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        assessment.id,
                        assessment.organization_id,
                        assessment.assessment_type.value,
                        assessment.vendor_id,
                        assessment.name,
                        assessment.description,
                        assessment.status.value,
                        assessment.linked_assessment_id,
                        assessment.completed_at.isoformat()
                        if assessment.completed_at
                        else None,
                        assessment.created_at.isoformat(),
                        assessment.updated_at.isoformat(),
                    ),
                )
            except sqlite3.Error as e:
                raise StorageError(f"Failed to create assessment: {e}") from e
        logger.debug(f"Created assessment {assessment.id} ({assessment.name})")
        return assessment

    def create_items(self, items: Iterable[AssessmentItem]) -> list[AssessmentItem]:
        """
        Insert assessment items in a single transaction.

        Raises:
            StorageError: If any insert fails. No items are written.
        """
        items = list(items)
        with self.database.connection() as conn:
            try:
                conn.execute("BEGIN TRANSACTION")
                conn.executemany(
                    """
                    INSERT INTO assessment_items (
                        id, assessment_id, subcategory_id, status, notes,
                        created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            item.id,
                            item.assessment_id,
                            item.subcategory_id,
                            item.status.value,
                            item.notes,
                            item.created_at.isoformat(),
                            item.updated_at.isoformat(),
                        )
                        for item in items
                    ],
                )
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                logger.error(f"Failed to create assessment items: {e}")
                raise StorageError(f"Failed to create assessment items: {e}") from e
        return items

    def list_items(
        self, assessment_id: str, function_id: str | None = None
    ) -> list[AssessmentItem]:
        """
        List the items of an assessment in subcategory order.

        Args:
            assessment_id: Assessment ID.
            function_id: Optional CSF function filter (e.g., "PR").
        """
        sql = "SELECT * FROM assessment_items WHERE assessment_id = ?"
        params: list[str] = [assessment_id]
        if function_id:
            sql += " AND subcategory_id LIKE ?"
            params.append(f"{function_id.upper()}.%")
        sql += " ORDER BY subcategory_id"
        with self.database.connection() as conn:
            cursor = conn.execute(sql, params)
            return [AssessmentItem.from_dict(dict(row)) for row in cursor.fetchall()]

    def get_item(self, item_id: str) -> AssessmentItem | None:
        """Get an assessment item by ID."""
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT * FROM assessment_items WHERE id = ?", (item_id,)
            ).fetchone()
            if row is None:
                return None
            return AssessmentItem.from_dict(dict(row))

    def update_item(
        self,
        item_id: str,
        status: ItemStatus | str,
        notes: str | None = None,
    ) -> AssessmentItem:
        """
        Update an item's status and, when given, its notes.

        Raises:
            ValidationError: If status is not an ItemStatus value.
            NotFoundError: If the item does not exist.
        """
        status = parse_enum(ItemStatus, status, "status")
        now = datetime.now(UTC).isoformat()
        with self.database.connection() as conn:
            try:
                if notes is None:
                    cursor = conn.execute(
                        "UPDATE assessment_items SET status = ?, updated_at = ? "
                        "WHERE id = ?",
                        (status.value, now, item_id),
                    )
                else:
                    cursor = conn.execute(
                        "UPDATE assessment_items SET status = ?, notes = ?, "
                        "updated_at = ? WHERE id = ?",
                        (status.value, notes, now, item_id),
                    )
            except sqlite3.Error as e:
                raise StorageError(f"Failed to update item: {e}") from e
            if cursor.rowcount == 0:
                raise NotFoundError(f"Assessment item not found: {item_id}")

        item = self.get_item(item_id)
        assert item is not None
        return item

    def update_assessment_status(
        self,
        assessment_id: str,
        status: AssessmentStatus | str,
        completed_at: datetime | None = None,
    ) -> Assessment:
        """
        Set an assessment's workflow status.

        Raises:
            NotFoundError: If the assessment does not exist.
        """
        status = parse_enum(AssessmentStatus, status, "status")
        now = datetime.now(UTC).isoformat()
        with self.database.connection() as conn:
            try:
                cursor = conn.execute(
                    "UPDATE assessments SET status = ?, completed_at = ?, updated_at = ? "
                    "WHERE id = ?",
                    (
                        status.value,
                        completed_at.isoformat() if completed_at else None,
                        now,
                        assessment_id,
                    ),
                )
            except sqlite3.Error as e:
                raise StorageError(f"Failed to update assessment: {e}") from e
            if cursor.rowcount == 0:
                raise NotFoundError(f"Assessment not found: {assessment_id}")

        assessment = self.get_assessment(assessment_id)
        assert assessment is not None
        return assessment

    def link_assessments(self, assessment_id: str, linked_assessment_id: str) -> None:
        """
        Link two assessments to each other in both directions.

        Raises:
            NotFoundError: If either assessment does not exist.
        """
        now = datetime.now(UTC).isoformat()
        with self.database.connection() as conn:
            try:
                conn.execute("BEGIN TRANSACTION")
                for source, target in (
                    (assessment_id, linked_assessment_id),
                    (linked_assessment_id, assessment_id),
                ):
                    cursor = conn.execute(
                        "UPDATE assessments SET linked_assessment_id = ?, "
                        "updated_at = ? WHERE id = ?",
                        (target, now, source),
                    )
                    if cursor.rowcount == 0:
                        conn.execute("ROLLBACK")
                        raise NotFoundError(f"Assessment not found: {source}")
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise StorageError(f"Failed to link assessments: {e}") from e
