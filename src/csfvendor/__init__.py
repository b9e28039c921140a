"""
csfvendor - Vendor self-assessment invitations for NIST CSF 2.0

Let a vendor answer the same NIST CSF 2.0 control set as your own vendor
assessment, without an account, and see where the two answers disagree.

Key Features:
    - Issues magic links bound to a single organization assessment
    - Validates links without organization credentials
    - Keeps the vendor's answers in a separate shadow assessment
    - Enforces the invitation lifecycle (pending, accessed, completed,
      expired, revoked) with atomic transitions
    - Compares organization and vendor answers control by control

Design Principles:
    - Expiry is computed when read, never swept
    - Tokens are bearer secrets: hashed at rest, redacted in logs
    - Every state change is audited
    - Unauthenticated callers only ever learn "invalid", "expired" or "revoked"
"""

__version__ = "0.1.0"
__author__ = ""
__email__ = ""

from csfvendor.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]
