"""
Service wiring for the vendor portal.

PortalServices builds every store and service over one data directory so
the HTTP server, the CLI and tests share the same construction. The clock
is injectable: every component reads time through it, so tests can move
time forward to exercise expiry.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from csfvendor.comparison.engine import ComparisonEngine
from csfvendor.config.settings import Settings
from csfvendor.invitations.gateway import PublicAccessGateway
from csfvendor.invitations.issuer import TokenIssuer
from csfvendor.invitations.proxy import VendorItemProxy
from csfvendor.invitations.sessions import SessionManager
from csfvendor.services.assessment_client import AssessmentServiceClient
from csfvendor.services.base import AssessmentService
from csfvendor.services.reference import CsfReferenceData
from csfvendor.storage.assessment_store import AssessmentStore
from csfvendor.storage.audit_log import AuditLog
from csfvendor.storage.database import Database
from csfvendor.storage.invitation_store import InvitationStore
from csfvendor.storage.rate_limits import RateLimiter

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(UTC)


@dataclass
class PortalServices:
    """Every component of the vendor portal, wired together."""

    settings: Settings
    database: Database
    invitations: InvitationStore
    assessments: AssessmentService
    reference: CsfReferenceData
    audit: AuditLog
    rate_limiter: RateLimiter
    sessions: SessionManager
    issuer: TokenIssuer
    gateway: PublicAccessGateway
    proxy: VendorItemProxy
    comparison: ComparisonEngine

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Clock | None = None,
        assessments: AssessmentService | None = None,
    ) -> PortalServices:
        """
        Build the portal services described by settings.

        Args:
            settings: Loaded configuration.
            clock: Time source returning aware UTC datetimes.
            assessments: Assessment service override. Defaults to the HTTP
                client when assessment_service.url is set, otherwise the
                local SQLite store.
        """
        clock = clock or system_clock
        data_dir = Path(settings.data_dir).expanduser()

        database = Database(data_dir)
        invitations = InvitationStore(database, clock=clock)
        reference = CsfReferenceData()
        audit = AuditLog(database)

        if assessments is None:
            if settings.assessment_service.url:
                logger.info(
                    f"Using remote assessment service at {settings.assessment_service.url}"
                )
                assessments = AssessmentServiceClient(
                    settings.assessment_service.url,
                    api_key=settings.assessment_service.api_key or None,
                    timeout=settings.assessment_service.timeout_seconds,
                )
            else:
                assessments = AssessmentStore(database)

        sessions = SessionManager.from_secret_or_file(
            data_dir,
            secret=settings.portal.session_secret,
            ttl_hours=settings.portal.session_ttl_hours,
            clock=clock,
        )

        return cls(
            settings=settings,
            database=database,
            invitations=invitations,
            assessments=assessments,
            reference=reference,
            audit=audit,
            rate_limiter=RateLimiter(database, clock=clock),
            sessions=sessions,
            issuer=TokenIssuer(
                invitations,
                assessments,
                reference,
                audit,
                base_url=settings.portal.base_url,
                default_expiry_days=settings.invitations.default_expiry_days,
                reissue_policy=settings.invitations.reissue_policy,
                clock=clock,
            ),
            gateway=PublicAccessGateway(
                invitations, assessments, sessions, audit, clock=clock
            ),
            proxy=VendorItemProxy(
                invitations, assessments, reference, audit, clock=clock
            ),
            comparison=ComparisonEngine(
                invitations,
                assessments,
                reference,
                not_applicable_policy=settings.comparison.not_applicable_policy,
                clock=clock,
            ),
        )
