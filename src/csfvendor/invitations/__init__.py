"""
Vendor invitations: issuance, public access and vendor-scoped item access.

Control flow:
    TokenIssuer.issue         organization sends a magic link
    PublicAccessGateway       vendor opens the link, gets a session
    VendorItemProxy           vendor answers items, then submits
"""

from csfvendor.invitations.gateway import (
    ERROR_EXPIRED,
    ERROR_INVALID,
    ERROR_REVOKED,
    PublicAccessGateway,
    ValidationResult,
)
from csfvendor.invitations.issuer import IssuedInvitation, TokenIssuer
from csfvendor.invitations.proxy import VendorItemProxy
from csfvendor.invitations.sessions import SessionManager, VendorSession

__all__ = [
    "TokenIssuer",
    "IssuedInvitation",
    "PublicAccessGateway",
    "ValidationResult",
    "VendorItemProxy",
    "SessionManager",
    "VendorSession",
    "ERROR_INVALID",
    "ERROR_EXPIRED",
    "ERROR_REVOKED",
]
