"""
Access token helpers.

Access tokens are 256-bit URL-safe bearer secrets. Only their SHA-256
digest is persisted; a short hint (the leading characters) is kept for
display and is the only form of a token that may appear in logs.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets

# Bytes of entropy per token (256 bits)
TOKEN_BYTES = 32

# Characters of the token kept as a display hint
TOKEN_HINT_LENGTH = 8

# token_urlsafe(32) yields 43 characters; accept a little slack either way
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


def generate_token() -> str:
    """Generate a new URL-safe access token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a token, as stored in the database."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_hint(token: str) -> str:
    """Leading characters of a token, safe to show and log."""
    return token[:TOKEN_HINT_LENGTH]


def redact_token(token: str | None) -> str:
    """
    Redacted form of a token for log lines.

    Example:
        >>> redact_token("Qm9yZWQgeWV0PyBHbyBvdXRzaWRl")
        'Qm9yZWQg...'
    """
    if not token:
        return "<none>"
    return f"{token_hint(token)}..."


def is_well_formed(token: str | None) -> bool:
    """Check that a value has the shape of an access token."""
    return bool(token) and _TOKEN_PATTERN.match(token or "") is not None


def tokens_match(a: str, b: str) -> bool:
    """Constant-time token comparison."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def build_magic_link(base_url: str, token: str) -> str:
    """
    Build the vendor portal link for a token.

    Example:
        >>> build_magic_link("https://app.example.com/", "abc")
        'https://app.example.com/vendor-portal/abc'
    """
    return f"{base_url.rstrip('/')}/vendor-portal/{token}"
