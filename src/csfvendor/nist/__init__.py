"""
NIST CSF 2.0 control catalog.

Control Hierarchy:
    - 6 Functions: Govern (GV), Identify (ID), Protect (PR), Detect (DE),
                   Respond (RS), Recover (RC)
    - 22 Categories
    - 106 Subcategories

Assessment items reference subcategories by id. The catalog is used to
seed new assessments and to group items by function and category.
"""

from csfvendor.nist.csf2_controls import (
    NistCategory,
    NistFunction,
    NistSubcategory,
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

__all__ = [
    # Dataclasses
    "NistFunction",
    "NistCategory",
    "NistSubcategory",
    # Lookup functions
    "get_function",
    "get_category",
    "get_subcategory",
    "get_all_functions",
    "get_all_categories",
    "get_all_subcategories",
    "function_id_for",
    "function_sort_key",
    "get_statistics",
]
