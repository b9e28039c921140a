"""
Tests for the NIST CSF 2.0 control catalog and reference data.

Uses Python's unittest module.
"""

from __future__ import annotations

import unittest

from csfvendor.nist import (
    function_id_for,
    function_sort_key,
    get_all_categories,
    get_all_functions,
    get_all_subcategories,
    get_category,
    get_function,
    get_statistics,
    get_subcategory,
)
from csfvendor.services import CsfReferenceData


class TestCatalog(unittest.TestCase):
    """Tests for the control hierarchy."""

    def test_statistics(self) -> None:
        self.assertEqual(
            get_statistics(), {"functions": 6, "categories": 22, "subcategories": 106}
        )

    def test_function_order(self) -> None:
        self.assertEqual(
            [f.id for f in get_all_functions()], ["GV", "ID", "PR", "DE", "RS", "RC"]
        )

    def test_subcategory_ids_unique(self) -> None:
        ids = [s.id for s in get_all_subcategories()]

        self.assertEqual(len(ids), len(set(ids)))

    def test_hierarchy_is_consistent(self) -> None:
        """Test every subcategory id starts with its category and function id."""
        for category in get_all_categories():
            self.assertTrue(category.id.startswith(category.function_id + "."))
            for subcategory in category.subcategories:
                self.assertTrue(subcategory.id.startswith(category.id + "-"))
                self.assertEqual(subcategory.function_id, category.function_id)

    def test_get_function(self) -> None:
        function = get_function("pr")

        self.assertEqual(function.name, "Protect")
        self.assertIsNone(get_function("XX"))

    def test_get_category(self) -> None:
        category = get_category("PR.AA")

        self.assertEqual(category.function_id, "PR")
        self.assertEqual(category.subcategories[0].id, "PR.AA-01")
        self.assertIsNone(get_category("PR.XX"))

    def test_get_subcategory(self) -> None:
        subcategory = get_subcategory("gv.oc-01")

        self.assertEqual(subcategory.id, "GV.OC-01")
        self.assertEqual(subcategory.category_id, "GV.OC")
        self.assertIsNone(get_subcategory("GV.OC-99"))

    def test_to_dict(self) -> None:
        data = get_function("RC").to_dict()

        self.assertEqual(data["id"], "RC")
        self.assertEqual(data["categories"][0]["subcategories"][0]["id"], "RC.RP-01")

    def test_function_id_for(self) -> None:
        self.assertEqual(function_id_for("PR.AA-01"), "PR")
        self.assertEqual(function_id_for("pr.xx-99"), "PR")

    def test_function_sort_key(self) -> None:
        ordered = sorted(["RC", "ZZ", "GV", "DE"], key=function_sort_key)

        self.assertEqual(ordered, ["GV", "DE", "RC", "ZZ"])


class TestCsfReferenceData(unittest.TestCase):
    """Tests for CsfReferenceData."""

    def setUp(self) -> None:
        self.reference = CsfReferenceData()

    def test_subcategory_ids(self) -> None:
        ids = self.reference.subcategory_ids()

        self.assertEqual(len(ids), 106)
        self.assertEqual(ids[0], "GV.OC-01")

    def test_describe(self) -> None:
        info = self.reference.describe("PR.AA-01")

        self.assertEqual(info["subcategory"]["name"], "Identity Management")
        self.assertEqual(info["category"]["id"], "PR.AA")
        self.assertEqual(info["function"], {"id": "PR", "name": "Protect"})

    def test_describe_unknown(self) -> None:
        """Test unknown controls still resolve to a function by prefix."""
        info = self.reference.describe("DE.XX-42")

        self.assertEqual(info["subcategory"], {"id": "DE.XX-42", "name": "DE.XX-42"})
        self.assertIsNone(info["category"])
        self.assertEqual(info["function"], {"id": "DE", "name": "Detect"})

    def test_function_helpers(self) -> None:
        self.assertEqual(self.reference.function_of("RS.MA-01"), "RS")
        self.assertEqual(self.reference.function_of("QQ.AA-01"), "QQ")
        self.assertEqual(self.reference.function_name("ID"), "Identify")
        self.assertEqual(self.reference.function_name("QQ"), "QQ")
        self.assertLess(
            self.reference.function_order("ID"), self.reference.function_order("PR")
        )


if __name__ == "__main__":
    unittest.main()
