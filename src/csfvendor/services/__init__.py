"""
External collaborators of the vendor portal.

AssessmentService and ReferenceDataService describe what the portal needs
from the rest of the product. CsfReferenceData serves the built-in CSF 2.0
catalog; AssessmentServiceClient talks to a remote assessment service.
"""

from csfvendor.services.assessment_client import AssessmentServiceClient
from csfvendor.services.base import AssessmentService, ReferenceDataService
from csfvendor.services.reference import CsfReferenceData

__all__ = [
    "AssessmentService",
    "ReferenceDataService",
    "AssessmentServiceClient",
    "CsfReferenceData",
]
