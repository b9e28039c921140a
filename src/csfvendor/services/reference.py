"""
CSF 2.0 reference data backed by the built-in control catalog.
"""

from __future__ import annotations

from typing import Any

from csfvendor.nist import (
    function_id_for,
    function_sort_key,
    get_all_subcategories,
    get_category,
    get_function,
    get_subcategory,
)


class CsfReferenceData:
    """
    Resolves subcategory ids to their subcategory, category and function.

    Unknown ids resolve to a placeholder whose function is taken from the
    id prefix, so items referencing retired or custom controls still group
    under a function.
    """

    def subcategory_ids(self) -> list[str]:
        """All subcategory ids in framework order."""
        return [s.id for s in get_all_subcategories()]

    def describe(self, subcategory_id: str) -> dict[str, Any]:
        """Subcategory, category and function metadata for one control."""
        subcategory = get_subcategory(subcategory_id)
        if subcategory is None:
            function_id = function_id_for(subcategory_id)
            return {
                "subcategory": {"id": subcategory_id, "name": subcategory_id},
                "category": None,
                "function": {"id": function_id, "name": self.function_name(function_id)},
            }

        category = get_category(subcategory.category_id)
        function = get_function(subcategory.function_id)
        return {
            "subcategory": {"id": subcategory.id, "name": subcategory.name},
            "category": {"id": category.id, "name": category.name} if category else None,
            "function": {"id": function.id, "name": function.name}
            if function
            else {"id": subcategory.function_id, "name": subcategory.function_id},
        }

    def function_of(self, subcategory_id: str) -> str:
        subcategory = get_subcategory(subcategory_id)
        if subcategory is None:
            return function_id_for(subcategory_id)
        return subcategory.function_id

    def function_name(self, function_id: str) -> str:
        function = get_function(function_id)
        return function.name if function else function_id

    def function_order(self, function_id: str) -> tuple[int, str]:
        return function_sort_key(function_id)
