"""
Scoped vendor sessions.

After a vendor opens a valid magic link the portal hands back a session
value (delivered as an HttpOnly cookie) so later calls need not carry the
token in the URL. The session is a Fernet token: the payload (access token
and invitation id) is encrypted and authenticated, and its timestamp bounds
the session lifetime.

Key Management:
    - portal.session_secret, when configured, is stretched with HKDF into
      the Fernet key so every instance behind a load balancer agrees
    - otherwise a random key is generated once into <data_dir>/session.key
      with owner-only permissions
"""

from __future__ import annotations

import base64
import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from csfvendor.errors import SessionError

logger = logging.getLogger(__name__)

SESSION_KEY_FILENAME = "session.key"

# Default session lifetime in hours
DEFAULT_SESSION_TTL_HOURS = 24


@dataclass
class VendorSession:
    """Decrypted contents of a vendor session."""

    token: str
    invitation_id: str
    issued_at: datetime


class SessionManager:
    """
    Issues and opens encrypted vendor sessions.

    Example:
        sessions = SessionManager.from_secret_or_file(data_dir, secret="")
        value = sessions.issue(token, invitation.id)
        session = sessions.open(value)   # raises SessionError when stale
    """

    def __init__(
        self,
        key: bytes,
        ttl_hours: int = DEFAULT_SESSION_TTL_HOURS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._fernet = Fernet(key)
        self.ttl_seconds = ttl_hours * 3600
        self._clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_secret_or_file(
        cls,
        data_dir: Path,
        secret: str = "",
        ttl_hours: int = DEFAULT_SESSION_TTL_HOURS,
        clock: Callable[[], datetime] | None = None,
    ) -> SessionManager:
        """Build a manager from a configured secret or the data dir key file."""
        if secret:
            key = derive_key(secret)
        else:
            key = load_or_create_key(data_dir / SESSION_KEY_FILENAME)
        return cls(key, ttl_hours=ttl_hours, clock=clock)

    def issue(self, token: str, invitation_id: str) -> str:
        """Create a session value for a validated token."""
        payload = json.dumps({"t": token, "i": invitation_id}).encode()
        now = int(self._clock().timestamp())
        return self._fernet.encrypt_at_time(payload, now).decode()

    def open(self, value: str | None) -> VendorSession:
        """
        Decrypt and check a session value.

        Raises:
            SessionError: If the value is missing, tampered with or older
                than the session lifetime.
        """
        if not value:
            raise SessionError("No vendor session")

        now = int(self._clock().timestamp())
        try:
            payload = self._fernet.decrypt_at_time(
                value.encode(), ttl=self.ttl_seconds, current_time=now
            )
            issued_at = self._fernet.extract_timestamp(value.encode())
            data = json.loads(payload)
            return VendorSession(
                token=data["t"],
                invitation_id=data["i"],
                issued_at=datetime.fromtimestamp(issued_at, UTC),
            )
        except (InvalidToken, ValueError, KeyError, TypeError) as e:
            raise SessionError("Vendor session is invalid or has expired") from e


def derive_key(secret: str) -> bytes:
    """Derive a Fernet key from a configured secret."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,  # Fernet requires 32-byte keys
        salt=None,
        info=b"csfvendor vendor session",
    )
    return base64.urlsafe_b64encode(hkdf.derive(secret.encode()))


def load_or_create_key(path: Path) -> bytes:
    """
    Read the session key file, generating it on first use.

    Raises:
        SessionError: If the file exists but does not hold a valid key.
    """
    if path.exists():
        key = path.read_bytes().strip()
        try:
            Fernet(key)
        except ValueError as e:
            raise SessionError(f"Invalid session key in {path}") from e
        return key

    key = Fernet.generate_key()
    path.parent.mkdir(parents=True, exist_ok=True)
    _write_secure_file(path, key)
    logger.info(f"Generated vendor session key at {path}")
    return key


def _write_secure_file(path: Path, data: bytes) -> None:
    """
    Write data to file with restrictive permissions.

    Uses atomic write (write to temp, then rename) to prevent
    partial writes from corrupting the file.
    """
    temp_path = path.with_suffix(".tmp")

    try:
        temp_path.write_bytes(data)

        # Owner read/write only
        try:
            os.chmod(temp_path, 0o600)
        except OSError:
            pass

        temp_path.rename(path)

    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise
