"""
Comparison of an organization's assessment with its vendor's self-assessment.
"""

from csfvendor.comparison.engine import (
    POLICY_EXACT,
    POLICY_SEPARATE,
    ComparisonCounts,
    ComparisonEngine,
    ComparisonResult,
    ControlComparison,
    FunctionComparison,
)

__all__ = [
    "ComparisonEngine",
    "ComparisonResult",
    "ComparisonCounts",
    "ControlComparison",
    "FunctionComparison",
    "POLICY_EXACT",
    "POLICY_SEPARATE",
]
