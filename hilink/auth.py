"""Password encoding required by the HiLink login endpoint."""

import base64
import hashlib
from enum import IntEnum


class PasswordType(IntEnum):
    """Password encoding announced by /api/user/state-login."""
    BASE64 = 0
    BASE64_ALT = 3
    SHA256 = 4


def encode_password(password: str, password_type: int = PasswordType.SHA256) -> str:
    """Encode a password the way the device expects it for ``password_type``.

    Types 0 and 3 are plain base64. Type 4 and anything unknown fall back to
    a hex SHA-256 digest, which is what current firmware announces.
    """
    raw = password.encode("utf-8")
    if password_type in (PasswordType.BASE64, PasswordType.BASE64_ALT):
        return base64.b64encode(raw).decode("ascii")
    return hashlib.sha256(raw).hexdigest()


def parse_password_type(value) -> int:
    """Parse the password_type field, defaulting to SHA-256 when absent."""
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return int(PasswordType.SHA256)
