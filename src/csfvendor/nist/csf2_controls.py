"""
NIST Cybersecurity Framework 2.0 control catalog.

This module contains the NIST CSF 2.0 control hierarchy used to seed
assessments and to group assessment items for display: 6 functions,
22 categories and 106 subcategories.

Reference: NIST Cybersecurity Framework 2.0 (February 2024)
https://www.nist.gov/cyberframework

The CSF 2.0 structure:
    - 6 Functions: Govern (GV), Identify (ID), Protect (PR), Detect (DE),
                   Respond (RS), Recover (RC)
    - 22 Categories: Grouped under functions
    - 106 Subcategories: Specific outcomes within categories

Subcategory ids ("GV.OC-01") are the stable keys that assessment items
reference. Item comparison joins on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class NistSubcategory:
    """
    A NIST CSF 2.0 subcategory (specific control outcome).

    Attributes:
        id: Unique identifier (e.g., "GV.OC-01")
        name: Short name
        category_id: Parent category ID
    """

    id: str
    name: str
    category_id: str

    @property
    def function_id(self) -> str:
        return self.category_id.split(".", 1)[0]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
        }


@dataclass
class NistCategory:
    """
    A NIST CSF 2.0 category (group of related subcategories).

    Attributes:
        id: Unique identifier (e.g., "GV.OC")
        name: Category name
        function_id: Parent function ID
        subcategories: List of subcategories in this category
    """

    id: str
    name: str
    function_id: str
    subcategories: list[NistSubcategory] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "function_id": self.function_id,
            "subcategories": [s.to_dict() for s in self.subcategories],
        }


@dataclass
class NistFunction:
    """
    A NIST CSF 2.0 function (top-level grouping).

    The six functions are:
        GV - Govern: Establish and monitor cybersecurity strategy
        ID - Identify: Understand cybersecurity risk
        PR - Protect: Safeguard against threats
        DE - Detect: Find and analyze attacks
        RS - Respond: Take action on incidents
        RC - Recover: Restore capabilities after incidents

    Attributes:
        id: Two-letter identifier (GV, ID, PR, DE, RS, RC)
        name: Function name
        categories: List of categories in this function
    """

    id: str
    name: str
    categories: list[NistCategory] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "categories": [c.to_dict() for c in self.categories],
        }


# =============================================================================
# NIST CSF 2.0 CONTROL HIERARCHY
# =============================================================================

# (function id, name, ((category id, name, ((subcategory id, name), ...)), ...))
_CATALOG: tuple[Any, ...] = (
    ("GV", "Govern", (
        ("GV.OC", "Organizational Context", (
            ("GV.OC-01", "Mission Understanding"),
            ("GV.OC-02", "Stakeholder Expectations"),
            ("GV.OC-03", "Legal and Regulatory Requirements"),
            ("GV.OC-04", "Critical Objectives"),
            ("GV.OC-05", "Outcomes and Dependencies"),
        )),
        ("GV.RM", "Risk Management Strategy", (
            ("GV.RM-01", "Risk Management Objectives"),
            ("GV.RM-02", "Risk Appetite and Tolerance"),
            ("GV.RM-03", "Risk Management Activities"),
            ("GV.RM-04", "Strategic Direction"),
            ("GV.RM-05", "Communication Lines"),
            ("GV.RM-06", "Standardized Method"),
            ("GV.RM-07", "Strategic Opportunities"),
        )),
        ("GV.RR", "Roles, Responsibilities, and Authorities", (
            ("GV.RR-01", "Leadership Accountability"),
            ("GV.RR-02", "Roles Established"),
            ("GV.RR-03", "Adequate Resources"),
            ("GV.RR-04", "Performance Evaluation"),
        )),
        ("GV.PO", "Policy", (
            ("GV.PO-01", "Policy Established"),
            ("GV.PO-02", "Policy Review"),
        )),
        ("GV.OV", "Oversight", (
            ("GV.OV-01", "Risk Management Review"),
            ("GV.OV-02", "Strategy Adjustment"),
            ("GV.OV-03", "Performance Evaluation"),
        )),
        ("GV.SC", "Cybersecurity Supply Chain Risk Management", (
            ("GV.SC-01", "Supply Chain Program"),
            ("GV.SC-02", "Supplier Roles"),
            ("GV.SC-03", "Supply Chain Integration"),
            ("GV.SC-04", "Supplier Assessment"),
            ("GV.SC-05", "Supplier Requirements"),
            ("GV.SC-06", "Due Diligence"),
            ("GV.SC-07", "Supplier Risk Understanding"),
            ("GV.SC-08", "Supplier Inclusion"),
            ("GV.SC-09", "Supply Chain Security"),
            ("GV.SC-10", "Supply Chain Plan"),
        )),
    )),
    ("ID", "Identify", (
        ("ID.AM", "Asset Management", (
            ("ID.AM-01", "Hardware Inventory"),
            ("ID.AM-02", "Software Inventory"),
            ("ID.AM-03", "Data Flow Mapping"),
            ("ID.AM-04", "External Service Inventory"),
            ("ID.AM-05", "Asset Prioritization"),
            ("ID.AM-07", "Data Inventory"),
            ("ID.AM-08", "System Use Management"),
        )),
        ("ID.RA", "Risk Assessment", (
            ("ID.RA-01", "Vulnerability Identification"),
            ("ID.RA-02", "Threat Intelligence"),
            ("ID.RA-03", "Threat Identification"),
            ("ID.RA-04", "Impact Analysis"),
            ("ID.RA-05", "Risk Determination"),
            ("ID.RA-06", "Risk Response"),
            ("ID.RA-07", "Risk Management Changes"),
            ("ID.RA-08", "Risk Prioritization"),
            ("ID.RA-09", "Asset Authenticity"),
            ("ID.RA-10", "Critical Supplier Assessment"),
        )),
        ("ID.IM", "Improvement", (
            ("ID.IM-01", "Improvement Identification"),
            ("ID.IM-02", "Improvement Implementation"),
            ("ID.IM-03", "Evaluation Sharing"),
            ("ID.IM-04", "Process Effectiveness"),
        )),
    )),
    ("PR", "Protect", (
        ("PR.AA", "Identity Management, Authentication, and Access Control", (
            ("PR.AA-01", "Identity Management"),
            ("PR.AA-02", "Identity Proofing"),
            ("PR.AA-03", "Authentication"),
            ("PR.AA-04", "Identity Assertions"),
            ("PR.AA-05", "Access Permissions"),
            ("PR.AA-06", "Physical Access"),
        )),
        ("PR.AT", "Awareness and Training", (
            ("PR.AT-01", "Security Awareness"),
            ("PR.AT-02", "Specialized Training"),
        )),
        ("PR.DS", "Data Security", (
            ("PR.DS-01", "Data-at-Rest Protection"),
            ("PR.DS-02", "Data-in-Transit Protection"),
            ("PR.DS-10", "Data-in-Use Protection"),
            ("PR.DS-11", "Data Backup"),
        )),
        ("PR.PS", "Platform Security", (
            ("PR.PS-01", "Configuration Management"),
            ("PR.PS-02", "Software Maintenance"),
            ("PR.PS-03", "Hardware Maintenance"),
            ("PR.PS-04", "Log Records"),
            ("PR.PS-05", "Software Installation"),
            ("PR.PS-06", "Secure Development"),
        )),
        ("PR.IR", "Technology Infrastructure Resilience", (
            ("PR.IR-01", "Network Protection"),
            ("PR.IR-02", "Security Architecture"),
            ("PR.IR-03", "Resilience Mechanisms"),
            ("PR.IR-04", "Capacity Resources"),
        )),
    )),
    ("DE", "Detect", (
        ("DE.CM", "Continuous Monitoring", (
            ("DE.CM-01", "Network Monitoring"),
            ("DE.CM-02", "Physical Environment Monitoring"),
            ("DE.CM-03", "Personnel Activity Monitoring"),
            ("DE.CM-06", "External Service Monitoring"),
            ("DE.CM-09", "Computing Hardware Monitoring"),
        )),
        ("DE.AE", "Adverse Event Analysis", (
            ("DE.AE-02", "Event Analysis"),
            ("DE.AE-03", "Event Correlation"),
            ("DE.AE-04", "Impact Estimation"),
            ("DE.AE-06", "Incident Declaration"),
            ("DE.AE-07", "Threat Intelligence Integration"),
            ("DE.AE-08", "Incident Determination"),
        )),
    )),
    ("RS", "Respond", (
        ("RS.MA", "Incident Management", (
            ("RS.MA-01", "Incident Response Plan"),
            ("RS.MA-02", "Incident Reporting"),
            ("RS.MA-03", "Incident Categorization"),
            ("RS.MA-04", "Incident Escalation"),
            ("RS.MA-05", "Incident Forensics"),
        )),
        ("RS.AN", "Incident Analysis", (
            ("RS.AN-03", "Root Cause Analysis"),
            ("RS.AN-06", "Investigation Actions"),
            ("RS.AN-07", "Incident Data Collection"),
            ("RS.AN-08", "Incident Impact"),
        )),
        ("RS.CO", "Incident Response Reporting and Communication", (
            ("RS.CO-02", "Internal Reporting"),
            ("RS.CO-03", "Information Sharing"),
        )),
        ("RS.MI", "Incident Mitigation", (
            ("RS.MI-01", "Containment"),
            ("RS.MI-02", "Eradication"),
        )),
    )),
    ("RC", "Recover", (
        ("RC.RP", "Incident Recovery Plan Execution", (
            ("RC.RP-01", "Recovery Plan Execution"),
            ("RC.RP-02", "Recovery Selection"),
            ("RC.RP-03", "Backup Integrity"),
            ("RC.RP-04", "Critical Function Consideration"),
            ("RC.RP-05", "Restoration Verification"),
            ("RC.RP-06", "Recovery End Declaration"),
        )),
        ("RC.CO", "Incident Recovery Communication", (
            ("RC.CO-03", "Recovery Communication"),
            ("RC.CO-04", "Public Communication"),
        )),
    )),
)


def _build_csf2_controls() -> list[NistFunction]:
    """
    Build the NIST CSF 2.0 control hierarchy from the catalog table.

    Returns all 6 functions with their 22 categories and 106 subcategories.
    """
    functions: list[NistFunction] = []
    for function_id, function_name, categories in _CATALOG:
        function = NistFunction(id=function_id, name=function_name)
        for category_id, category_name, subcategories in categories:
            category = NistCategory(
                id=category_id, name=category_name, function_id=function_id
            )
            for subcategory_id, subcategory_name in subcategories:
                category.subcategories.append(
                    NistSubcategory(
                        id=subcategory_id,
                        name=subcategory_name,
                        category_id=category_id,
                    )
                )
            function.categories.append(category)
        functions.append(function)
    return functions


# Build the control hierarchy
_CSF2_FUNCTIONS = _build_csf2_controls()

# Build lookup indices
_FUNCTION_INDEX: dict[str, NistFunction] = {f.id: f for f in _CSF2_FUNCTIONS}
_CATEGORY_INDEX: dict[str, NistCategory] = {}
_SUBCATEGORY_INDEX: dict[str, NistSubcategory] = {}
_FUNCTION_ORDER: dict[str, int] = {f.id: i for i, f in enumerate(_CSF2_FUNCTIONS)}

for func in _CSF2_FUNCTIONS:
    for cat in func.categories:
        _CATEGORY_INDEX[cat.id] = cat
        for subcat in cat.subcategories:
            _SUBCATEGORY_INDEX[subcat.id] = subcat


# =============================================================================
# PUBLIC API
# =============================================================================

def get_function(function_id: str) -> NistFunction | None:
    """
    Get a NIST function by ID.

    Args:
        function_id: Function identifier (GV, ID, PR, DE, RS, RC)

    Returns:
        NistFunction if found, None otherwise.
    """
    return _FUNCTION_INDEX.get(function_id.upper())


def get_category(category_id: str) -> NistCategory | None:
    """
    Get a NIST category by ID.

    Args:
        category_id: Category identifier (e.g., "GV.OC", "PR.AA")

    Returns:
        NistCategory if found, None otherwise.
    """
    return _CATEGORY_INDEX.get(category_id.upper())


def get_subcategory(subcategory_id: str) -> NistSubcategory | None:
    """
    Get a NIST subcategory by ID.

    Args:
        subcategory_id: Subcategory identifier (e.g., "GV.OC-01", "PR.AA-03")

    Returns:
        NistSubcategory if found, None otherwise.
    """
    return _SUBCATEGORY_INDEX.get(subcategory_id.upper())


def get_all_functions() -> list[NistFunction]:
    """
    Get all NIST CSF 2.0 functions in framework order.

    Returns:
        List of all 6 functions.
    """
    return list(_CSF2_FUNCTIONS)


def get_all_categories() -> list[NistCategory]:
    """
    Get all NIST CSF 2.0 categories.

    Returns:
        List of all 22 categories.
    """
    return list(_CATEGORY_INDEX.values())


def get_all_subcategories() -> list[NistSubcategory]:
    """
    Get all NIST CSF 2.0 subcategories in framework order.

    Returns:
        List of all 106 subcategories.
    """
    return list(_SUBCATEGORY_INDEX.values())


def function_id_for(subcategory_id: str) -> str:
    """
    Derive the function ID of a subcategory from its identifier prefix.

    Works for identifiers missing from the catalog, e.g. "PR.XX-99" -> "PR".
    """
    return subcategory_id.split(".", 1)[0].upper()


def function_sort_key(function_id: str) -> tuple[int, str]:
    """Sort key placing known functions in framework order, unknown ones last."""
    return (_FUNCTION_ORDER.get(function_id, len(_FUNCTION_ORDER)), function_id)


def get_statistics() -> dict[str, int]:
    """
    Get statistics about the NIST CSF 2.0 control catalog.

    Returns:
        Dictionary with counts of functions, categories and subcategories.
    """
    return {
        "functions": len(_FUNCTION_INDEX),
        "categories": len(_CATEGORY_INDEX),
        "subcategories": len(_SUBCATEGORY_INDEX),
    }
