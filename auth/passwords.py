"""
auth/passwords.py -- Salted PBKDF2 password hashing and strength checks.

Security design decisions:
  Hash format: base64(salt || derived_key). 16 random bytes of salt, then a
       32-byte PBKDF2-HMAC-SHA256 key at 100,000 iterations. The salt travels
       inside the blob, so verify_password() needs nothing but the blob.

  Comparison: hmac.compare_digest over the full derived key. No early exit on
       the first differing byte.

  Failure shape: verify_password() returns False for a wrong password AND for
       a malformed blob. Callers cannot tell the two apart, and no decode error
       ever escapes as a 500.

  Timing equalization: DUMMY_HASH is computed once at module load. Login
       verifies against it when the email is unknown so the response time does
       not reveal whether an account exists.

Layer rule: stdlib only. No imports from api/ or projects/.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import secrets
from dataclasses import dataclass

SALT_BYTES = 16
KEY_BYTES = 32
ITERATIONS = 100_000
MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class PasswordCheck:
    """Result of validate_password_strength(). message is None when valid."""

    valid: bool
    message: str | None = None


def _derive(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, ITERATIONS, dklen=KEY_BYTES)


def hash_password(password: str) -> str:
    """Return an opaque salted hash blob for the given plaintext password.

    Not idempotent: every call draws a fresh salt, so hashing the same
    password twice yields two different blobs that both verify.
    """
    salt = secrets.token_bytes(SALT_BYTES)
    return base64.b64encode(salt + _derive(password, salt)).decode("ascii")


def verify_password(password: str, blob: str) -> bool:
    """Return True if the plaintext password matches the stored blob."""
    try:
        raw = base64.b64decode(blob.encode("ascii"), validate=True)
    except (AttributeError, UnicodeEncodeError, binascii.Error, ValueError):
        return False
    if len(raw) != SALT_BYTES + KEY_BYTES:
        return False
    salt, stored = raw[:SALT_BYTES], raw[SALT_BYTES:]
    try:
        derived = _derive(password, salt)
    except (AttributeError, UnicodeEncodeError):
        return False
    return hmac.compare_digest(derived, stored)


def validate_password_strength(password: str) -> PasswordCheck:
    """Check a candidate password against the strength policy. Pure, no I/O."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return PasswordCheck(
            valid=False,
            message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.",
        )
    return PasswordCheck(valid=True)


# Computed once so the first unknown-email login is not measurably faster
# than later ones. See AuthService.login().
DUMMY_HASH: str = hash_password("issuetrack_timing_dummy")
