"""
Shared helpers for the csfvendor tests.

Provides a controllable clock and builders for wired portal services over a
temporary data directory.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from csfvendor.app import PortalServices
from csfvendor.config.settings import Settings
from csfvendor.storage.models import (
    Assessment,
    AssessmentItem,
    AssessmentStatus,
    AssessmentType,
    ItemStatus,
)

START_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)

DEFAULT_ITEMS = {
    "GV.OC-01": ItemStatus.COMPLIANT,
    "ID.AM-01": ItemStatus.PARTIAL,
    "PR.AA-01": ItemStatus.COMPLIANT,
    "DE.CM-01": ItemStatus.NON_COMPLIANT,
    "RS.MA-01": ItemStatus.NOT_APPLICABLE,
}


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


def make_settings(data_dir: str) -> Settings:
    settings = Settings(data_dir=data_dir)
    settings.portal.session_secret = "test-session-secret"
    settings.portal.base_url = "https://app.example.com"
    return settings


def make_services(
    data_dir: str,
    clock: FakeClock | None = None,
    settings: Settings | None = None,
) -> PortalServices:
    return PortalServices.from_settings(
        settings or make_settings(data_dir), clock=clock or FakeClock()
    )


def seed_vendor_assessment(
    services: PortalServices,
    items: dict[str, ItemStatus] | None = None,
    vendor_id: str | None = "vendor-1",
    assessment_type: AssessmentType = AssessmentType.VENDOR,
) -> Assessment:
    """Create an organization-side vendor assessment with answered items."""
    assessment = Assessment.create(
        organization_id="org-1",
        assessment_type=assessment_type,
        name="Acme Cloud Review",
        vendor_id=vendor_id,
        status=AssessmentStatus.IN_PROGRESS,
    )
    services.assessments.create_assessment(assessment)

    answers = DEFAULT_ITEMS if items is None else items
    services.assessments.create_items(
        AssessmentItem.create(assessment.id, subcategory_id, status=status)
        for subcategory_id, status in answers.items()
    )
    return assessment


def items_by_subcategory(items: Iterable[dict]) -> dict[str, dict]:
    return {item["subcategory_id"]: item for item in items}
