"""
Organization vs vendor assessment comparison.

Joins the organization's items with the vendor's shadow items on the CSF
subcategory id and classifies every control:

    not assessed   the vendor has not answered (no item, or not_assessed)
    match          both sides gave the same answer
    difference     both answered, with different answers

Controls the vendor has not answered are never counted as differences.
A control both sides left as not_assessed counts as not assessed, never as
a match. Every shadow starts with one not_assessed item per organization
control.
Results are grouped by CSF function in framework order for tabbed display.

is_final follows the stored completed status, so submitted answers stay
final after the link expires. invitation_status is the status observed at
comparison time and reads expired past the expiry.

Not Applicable Policy:
    exact     not_applicable is an ordinary answer (default)
    separate  a disagreement where either side is not_applicable is
              counted as an applicability difference instead
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from csfvendor.errors import NotFoundError
from csfvendor.services.base import AssessmentService, ReferenceDataService
from csfvendor.storage.invitation_store import InvitationStore
from csfvendor.storage.models import AssessmentItem, InvitationStatus, ItemStatus

logger = logging.getLogger(__name__)

POLICY_EXACT = "exact"
POLICY_SEPARATE = "separate"


@dataclass
class ControlComparison:
    """
    Comparison of one control.

    Attributes:
        subcategory_id: CSF subcategory key.
        org_item: Organization's answer.
        vendor_item: Vendor's answer, if the shadow has the control.
        vendor_answered: Vendor item present and not not_assessed.
        matches: Answered and equal.
        difference: "Org: x, Vendor: y" when answered and unequal.
        applicability_difference: Unequal answers where either side is
            not_applicable, under the "separate" policy.
    """

    subcategory_id: str
    function_id: str
    org_item: AssessmentItem
    vendor_item: AssessmentItem | None
    vendor_answered: bool
    matches: bool
    difference: str | None = None
    applicability_difference: bool = False
    reference: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "subcategory_id": self.subcategory_id,
            "function_id": self.function_id,
            "subcategory": self.reference.get("subcategory"),
            "category": self.reference.get("category"),
            "org_item": self.org_item.to_dict(),
            "vendor_item": self.vendor_item.to_dict() if self.vendor_item else None,
            "vendor_answered": self.vendor_answered,
            "matches": self.matches,
            "difference": self.difference,
            "applicability_difference": self.applicability_difference,
        }


@dataclass
class ComparisonCounts:
    """Aggregate counts over a set of controls."""

    total: int = 0
    matches: int = 0
    differences: int = 0
    not_assessed: int = 0
    applicability_differences: int = 0

    @property
    def answered(self) -> int:
        return self.total - self.not_assessed

    @property
    def match_rate(self) -> float:
        """Percentage of answered controls that match."""
        if self.answered == 0:
            return 0.0
        return round(self.matches / self.answered * 100, 1)

    def add(self, control: ControlComparison) -> None:
        self.total += 1
        if not control.vendor_answered:
            self.not_assessed += 1
        elif control.matches:
            self.matches += 1
        elif control.applicability_difference:
            self.applicability_differences += 1
        else:
            self.differences += 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total": self.total,
            "matches": self.matches,
            "differences": self.differences,
            "not_assessed": self.not_assessed,
            "applicability_differences": self.applicability_differences,
            "match_rate": self.match_rate,
        }


@dataclass
class FunctionComparison:
    """Controls of one CSF function."""

    function_id: str
    function_name: str
    counts: ComparisonCounts = field(default_factory=ComparisonCounts)
    controls: list[ControlComparison] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "function_id": self.function_id,
            "function_name": self.function_name,
            "counts": self.counts.to_dict(),
            "controls": [c.to_dict() for c in self.controls],
        }


@dataclass
class ComparisonResult:
    """
    Complete comparison of an organization assessment with the vendor's answers.

    Before the vendor submits, the result is provisional: is_final is
    False and invitation_status reports how far the vendor got.
    """

    organization_assessment_id: str
    vendor_assessment_id: str | None
    invitation_id: str | None
    invitation_status: InvitationStatus | None
    is_final: bool
    not_applicable_policy: str
    counts: ComparisonCounts
    controls: list[ControlComparison]
    by_function: list[FunctionComparison]
    generated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "organization_assessment_id": self.organization_assessment_id,
            "vendor_assessment_id": self.vendor_assessment_id,
            "invitation_id": self.invitation_id,
            "invitation_status": self.invitation_status.value
            if self.invitation_status
            else None,
            "is_final": self.is_final,
            "not_applicable_policy": self.not_applicable_policy,
            "total": self.counts.total,
            "matches": self.counts.matches,
            "differences": self.counts.differences,
            "not_assessed": self.counts.not_assessed,
            "applicability_differences": self.counts.applicability_differences,
            "match_rate": self.counts.match_rate,
            "controls": [c.to_dict() for c in self.controls],
            "by_function": [f.to_dict() for f in self.by_function],
            "generated_at": self.generated_at.isoformat(),
        }


class ComparisonEngine:
    """
    Compares an organization assessment with its vendor's self-assessment.

    Example:
        engine = ComparisonEngine(invitations, assessments, reference)
        result = engine.compare(assessment_id)
        print(f"{result.counts.differences} differences")
        for group in result.by_function:
            ...
    """

    def __init__(
        self,
        invitations: InvitationStore,
        assessments: AssessmentService,
        reference: ReferenceDataService,
        not_applicable_policy: str = POLICY_EXACT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.invitations = invitations
        self.assessments = assessments
        self.reference = reference
        self.not_applicable_policy = not_applicable_policy
        self._clock = clock or (lambda: datetime.now(UTC))

    def compare(self, organization_assessment_id: str) -> ComparisonResult:
        """
        Compare the organization's answers with the vendor's.

        Uses the most recent invitation for the assessment. Without one the
        result lists the organization's answers only, all not assessed.

        Raises:
            NotFoundError: If the assessment does not exist.
        """
        now = self._clock()
        assessment = self.assessments.get_assessment(organization_assessment_id)
        if assessment is None:
            raise NotFoundError(f"Assessment not found: {organization_assessment_id}")

        org_items = self.assessments.list_items(assessment.id)

        invitation = self.invitations.get_by_assessment(assessment.id)
        vendor_by_subcategory: dict[str, AssessmentItem] = {}
        if invitation is not None:
            for item in self.assessments.list_items(invitation.vendor_self_assessment_id):
                vendor_by_subcategory[item.subcategory_id] = item

        controls = [
            self._compare_control(org_item, vendor_by_subcategory.get(org_item.subcategory_id))
            for org_item in org_items
        ]

        counts = ComparisonCounts()
        groups: dict[str, FunctionComparison] = {}
        for control in controls:
            counts.add(control)
            group = groups.get(control.function_id)
            if group is None:
                group = FunctionComparison(
                    function_id=control.function_id,
                    function_name=self.reference.function_name(control.function_id),
                )
                groups[control.function_id] = group
            group.counts.add(control)
            group.controls.append(control)

        by_function = sorted(
            groups.values(), key=lambda g: self.reference.function_order(g.function_id)
        )

        invitation_status = invitation.effective_status(now) if invitation else None
        logger.debug(
            f"Compared assessment {assessment.id}: {counts.matches} matches, "
            f"{counts.differences} differences, {counts.not_assessed} not assessed"
        )

        return ComparisonResult(
            organization_assessment_id=assessment.id,
            vendor_assessment_id=invitation.vendor_self_assessment_id if invitation else None,
            invitation_id=invitation.id if invitation else None,
            invitation_status=invitation_status,
            is_final=invitation is not None
            and invitation.status == InvitationStatus.COMPLETED,
            not_applicable_policy=self.not_applicable_policy,
            counts=counts,
            controls=controls,
            by_function=by_function,
            generated_at=now,
        )

    def _compare_control(
        self, org_item: AssessmentItem, vendor_item: AssessmentItem | None
    ) -> ControlComparison:
        answered = (
            vendor_item is not None and vendor_item.status != ItemStatus.NOT_ASSESSED
        )
        matches = answered and vendor_item.status == org_item.status

        difference = None
        applicability = False
        if answered and not matches:
            difference = f"Org: {org_item.status.value}, Vendor: {vendor_item.status.value}"
            if self.not_applicable_policy == POLICY_SEPARATE:
                applicability = ItemStatus.NOT_APPLICABLE in (
                    org_item.status,
                    vendor_item.status,
                )

        return ControlComparison(
            subcategory_id=org_item.subcategory_id,
            function_id=self.reference.function_of(org_item.subcategory_id),
            org_item=org_item,
            vendor_item=vendor_item,
            vendor_answered=answered,
            matches=matches,
            difference=difference,
            applicability_difference=applicability,
            reference=self.reference.describe(org_item.subcategory_id),
        )
