"""
Demo data generator for the vendor portal.

Seeds an organization's vendor assessment with answered controls so the
invitation flow and the comparison can be tried without an external
assessment service.

Profiles:
    - startup: Small vendor, basic security, many gaps
    - growing: Mid-size vendor, moderate security, some gaps
    - mature: Large vendor, strong security, few gaps
"""

from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

from csfvendor.app import PortalServices
from csfvendor.nist import get_all_subcategories
from csfvendor.storage.assessment_store import AssessmentStore
from csfvendor.storage.models import (
    Assessment,
    AssessmentItem,
    AssessmentStatus,
    AssessmentType,
    ItemStatus,
)

logger = logging.getLogger(__name__)


class DemoProfile(Enum):
    """Demo vendor profiles with different security postures."""

    STARTUP = "startup"  # Many gaps
    GROWING = "growing"  # Some gaps
    MATURE = "mature"  # Few gaps


# Answer distributions by profile
# Format: [compliant, partial, non_compliant, not_applicable, not_assessed]
STATUS_DISTRIBUTIONS = {
    DemoProfile.STARTUP: [0.20, 0.30, 0.30, 0.05, 0.15],
    DemoProfile.GROWING: [0.45, 0.25, 0.15, 0.05, 0.10],
    DemoProfile.MATURE: [0.75, 0.12, 0.05, 0.05, 0.03],
}

_STATUS_ORDER = [
    ItemStatus.COMPLIANT,
    ItemStatus.PARTIAL,
    ItemStatus.NON_COMPLIANT,
    ItemStatus.NOT_APPLICABLE,
    ItemStatus.NOT_ASSESSED,
]

# Vendor names for profiles
VENDOR_NAMES = {
    DemoProfile.STARTUP: "TechStart Inc.",
    DemoProfile.GROWING: "GrowthCo Solutions",
    DemoProfile.MATURE: "Enterprise Global Corp",
}

DEMO_ORGANIZATION_ID = "demo-organization"


@dataclass
class DemoConfig:
    """Configuration for demo data generation."""

    profile: DemoProfile
    vendor_name: str
    organization_id: str = DEMO_ORGANIZATION_ID
    vendor_email: str | None = None
    seed: int | None = None


class DemoGenerator:
    """
    Generates a demo vendor assessment, and optionally an invitation for it.

    Only works against the local assessment store: a remote assessment
    service owns its own data.
    """

    def __init__(self, services: PortalServices, config: DemoConfig | None = None) -> None:
        if not isinstance(services.assessments, AssessmentStore):
            raise ValueError(
                "Demo data can only be generated with the local assessment store"
            )
        self.services = services
        self.store = services.assessments
        self.config = config or DemoConfig(
            profile=DemoProfile.GROWING,
            vendor_name=VENDOR_NAMES[DemoProfile.GROWING],
        )
        self._random = random.Random(self.config.seed)

    def generate(self) -> dict[str, Any]:
        """
        Generate the demo assessment.

        Returns:
            Summary of generated data. Includes the magic link when a
            vendor email was configured.
        """
        logger.info(f"Generating demo data for profile: {self.config.profile.value}")

        vendor_id = f"vendor-{uuid.uuid4().hex[:8]}"
        assessment = Assessment.create(
            organization_id=self.config.organization_id,
            assessment_type=AssessmentType.VENDOR,
            name=f"{self.config.vendor_name} Security Review",
            vendor_id=vendor_id,
            description=f"Demo assessment ({self.config.profile.value} profile)",
            status=AssessmentStatus.IN_PROGRESS,
        )
        self.store.create_assessment(assessment)

        distribution = STATUS_DISTRIBUTIONS[self.config.profile]
        items = [
            AssessmentItem.create(
                assessment.id,
                subcategory.id,
                status=self._random_status(distribution),
            )
            for subcategory in get_all_subcategories()
        ]
        self.store.create_items(items)

        status_counts: dict[str, int] = {}
        for item in items:
            status_counts[item.status.value] = status_counts.get(item.status.value, 0) + 1

        summary: dict[str, Any] = {
            "profile": self.config.profile.value,
            "vendor_name": self.config.vendor_name,
            "vendor_id": vendor_id,
            "organization_id": self.config.organization_id,
            "assessment_id": assessment.id,
            "items": len(items),
            "status_counts": status_counts,
            "invitation": None,
        }

        if self.config.vendor_email:
            issued = self.services.issuer.issue(
                assessment.id,
                self.config.vendor_email,
                vendor_contact_name=self.config.vendor_name,
            )
            summary["invitation"] = issued.to_dict()

        logger.info(f"Demo data generation complete: assessment {assessment.id}")
        return summary

    def _random_status(self, distribution: list[float]) -> ItemStatus:
        """Select an answer based on the distribution weights."""
        r = self._random.random()
        cumulative = 0.0
        for status, weight in zip(_STATUS_ORDER, distribution):
            cumulative += weight
            if r < cumulative:
                return status
        return ItemStatus.COMPLIANT


def generate_demo_data(
    services: PortalServices,
    profile: str | DemoProfile = DemoProfile.GROWING,
    vendor_name: str | None = None,
    vendor_email: str | None = None,
    seed: int | None = None,
) -> dict[str, Any]:
    """
    Generate demo data with a single function call.

    Args:
        services: Portal services to seed.
        profile: Demo profile ("startup", "growing", "mature") or DemoProfile enum.
        vendor_name: Vendor name. Defaults based on profile.
        vendor_email: When given, an invitation is issued to this address.
        seed: Random seed for reproducible answers.

    Returns:
        Summary of generated data.

    Example:
        summary = generate_demo_data(services, profile="startup",
                                     vendor_email="security@vendor.example")
        print(summary["invitation"]["magic_link"])
    """
    if isinstance(profile, str):
        profile = DemoProfile(profile.lower())

    if vendor_name is None:
        vendor_name = VENDOR_NAMES[profile]

    config = DemoConfig(
        profile=profile,
        vendor_name=vendor_name,
        vendor_email=vendor_email,
        seed=seed,
    )

    generator = DemoGenerator(services, config=config)
    return generator.generate()
