"""
Interfaces of the services the vendor portal depends on.

The portal owns invitations. Assessments, their items and the CSF
reference data belong to other parts of the product and are reached
through these protocols. Two assessment implementations ship with the
package: the local SQLite AssessmentStore and the HTTP
AssessmentServiceClient.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from csfvendor.storage.models import (
    Assessment,
    AssessmentItem,
    AssessmentStatus,
    ItemStatus,
)


@runtime_checkable
class AssessmentService(Protocol):
    """Read and write access to assessments and their items."""

    def get_assessment(self, assessment_id: str) -> Assessment | None: ...

    def list_items(
        self, assessment_id: str, function_id: str | None = None
    ) -> list[AssessmentItem]: ...

    def get_item(self, item_id: str) -> AssessmentItem | None: ...

    def create_assessment(self, assessment: Assessment) -> Assessment: ...

    def create_items(self, items: Iterable[AssessmentItem]) -> list[AssessmentItem]: ...

    def update_item(
        self,
        item_id: str,
        status: ItemStatus | str,
        notes: str | None = None,
    ) -> AssessmentItem: ...

    def update_assessment_status(
        self,
        assessment_id: str,
        status: AssessmentStatus | str,
        completed_at: datetime | None = None,
    ) -> Assessment: ...

    def link_assessments(self, assessment_id: str, linked_assessment_id: str) -> None: ...


@runtime_checkable
class ReferenceDataService(Protocol):
    """Lookup of framework metadata for control identifiers."""

    def subcategory_ids(self) -> list[str]: ...

    def describe(self, subcategory_id: str) -> dict[str, Any]: ...

    def function_of(self, subcategory_id: str) -> str: ...

    def function_name(self, function_id: str) -> str: ...

    def function_order(self, function_id: str) -> tuple[int, str]: ...
