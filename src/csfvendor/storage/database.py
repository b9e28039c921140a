"""
SQLite database shared by the csfvendor stores.

Storage Structure:
    data/
        csfvendor.db        # SQLite database
        session.key         # Vendor session encryption key

Design Decisions:
    - One database file backs the invitation, assessment, audit log and
      rate limit stores so several service instances can share it
    - Invitations are never deleted
    - The single active invitation per assessment is enforced with a
      UNIQUE column, not by application checks alone

Thread Safety:
    Connection-per-operation with autocommit mode. Writers that read then
    write open an IMMEDIATE transaction so the write lock is taken up front.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from csfvendor.config.settings import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


# Database schema version for migrations
SCHEMA_VERSION = 1

DATABASE_FILENAME = "csfvendor.db"

# Seconds a connection waits for a competing writer
BUSY_TIMEOUT_SECONDS = 10.0


# SQL statements for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Assessments (local implementation of the assessment service)
CREATE TABLE IF NOT EXISTS assessments (
    id TEXT PRIMARY KEY,
    organization_id TEXT NOT NULL,
    assessment_type TEXT NOT NULL,
    vendor_id TEXT,
    name TEXT NOT NULL,
    description TEXT,
    status TEXT NOT NULL,
    linked_assessment_id TEXT,
    completed_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_assessments_org ON assessments(organization_id);

-- Per-control answers
CREATE TABLE IF NOT EXISTS assessment_items (
    id TEXT PRIMARY KEY,
    assessment_id TEXT NOT NULL,
    subcategory_id TEXT NOT NULL,
    status TEXT NOT NULL,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (assessment_id) REFERENCES assessments(id),
    UNIQUE (assessment_id, subcategory_id)
);

CREATE INDEX IF NOT EXISTS idx_items_assessment ON assessment_items(assessment_id);

-- Vendor invitations
CREATE TABLE IF NOT EXISTS vendor_invitations (
    id TEXT PRIMARY KEY,
    organization_assessment_id TEXT NOT NULL,
    vendor_self_assessment_id TEXT NOT NULL,
    vendor_id TEXT NOT NULL,
    organization_id TEXT NOT NULL,
    vendor_contact_email TEXT NOT NULL,
    vendor_contact_name TEXT,
    message TEXT,
    token_hash TEXT NOT NULL UNIQUE,
    token_hint TEXT NOT NULL,
    token_expires_at TEXT NOT NULL,
    status TEXT NOT NULL,
    active_assessment_id TEXT UNIQUE,
    sent_at TEXT NOT NULL,
    accessed_at TEXT,
    last_accessed_at TEXT,
    completed_at TEXT,
    revoked_at TEXT,
    revoked_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_invitations_assessment
    ON vendor_invitations(organization_assessment_id, created_at);

-- Vendor audit trail
CREATE TABLE IF NOT EXISTS vendor_audit_log (
    id TEXT PRIMARY KEY,
    invitation_id TEXT,
    action TEXT NOT NULL,
    ip_address TEXT,
    user_agent TEXT,
    metadata_json TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_audit_invitation ON vendor_audit_log(invitation_id, created_at);

-- Fixed-window rate limit counters
CREATE TABLE IF NOT EXISTS rate_limits (
    key TEXT PRIMARY KEY,
    window_start REAL NOT NULL,
    count INTEGER NOT NULL
);
"""


class Database:
    """
    Handle to the csfvendor SQLite database.

    Creates the schema on first use and hands out short-lived connections.

    Example:
        db = Database(data_dir=Path("./data"))
        with db.connection() as conn:
            conn.execute("SELECT COUNT(*) FROM vendor_invitations")

    Attributes:
        data_dir: Base directory for all data storage.
        db_path: Path to the SQLite database file.
    """

    def __init__(self, data_dir: Path | str | None = None) -> None:
        """
        Initialize the database.

        Args:
            data_dir: Base directory for data storage. Defaults to ~/.csfvendor/data
        """
        if data_dir is None:
            data_dir = DEFAULT_CONFIG_DIR / "data"
        elif isinstance(data_dir, str):
            data_dir = Path(data_dir)

        self.data_dir = data_dir
        self.db_path = data_dir / DATABASE_FILENAME

        self.data_dir.mkdir(parents=True, exist_ok=True)

        self._init_database()

    def _init_database(self) -> None:
        """Initialize the database schema."""
        try:
            with self.connection() as conn:
                conn.executescript(CREATE_TABLES_SQL)

                cursor = conn.execute(
                    "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
                )
                row = cursor.fetchone()

                if row is None:
                    conn.execute(
                        "INSERT OR IGNORE INTO schema_version (version, applied_at) "
                        "VALUES (?, ?)",
                        (SCHEMA_VERSION, datetime.now(UTC).isoformat()),
                    )
                    logger.info(f"Initialized database schema version {SCHEMA_VERSION}")
                elif row[0] < SCHEMA_VERSION:
                    logger.warning(
                        f"Database schema version {row[0]} is older than "
                        f"expected version {SCHEMA_VERSION}"
                    )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot initialize database {self.db_path}: {e}") from e

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get a database connection with proper settings.

        Yields:
            SQLite connection with row factory set.
        """
        conn = sqlite3.connect(
            str(self.db_path),
            isolation_level=None,  # Autocommit mode, we manage transactions manually
            check_same_thread=False,
            timeout=BUSY_TIMEOUT_SECONDS,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def get_statistics(self) -> dict[str, int]:
        """Row counts per table, for the status command."""
        tables = [
            "assessments",
            "assessment_items",
            "vendor_invitations",
            "vendor_audit_log",
        ]
        stats: dict[str, int] = {}
        with self.connection() as conn:
            for table in tables:
                row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
                stats[table] = row[0]
        return stats
