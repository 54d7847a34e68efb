"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in projects/models.py -- dataclasses own domain shape; stores and services
do the work.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

from dataclasses import dataclass

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"


@dataclass
class User:
    """Represents a registered identity in IssueTrack.

    email is unique and compared case-sensitively, exactly as stored.

    password_hash is the opaque PBKDF2 blob from auth/passwords.py (salt
    embedded). It never leaves the service layer -- API responses are built
    from the other fields only.

    status moves pending -> approved through admin approval only. Accounts are
    never hard-deleted by the normal flow.
    """

    email: str
    name: str
    id: int | None = None
    password_hash: str | None = None
    status: str = STATUS_PENDING  # "pending" | "approved"
    is_admin: bool = False
    created_at: str | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == STATUS_APPROVED


@dataclass
class Session:
    """Server-side record that makes a token revocable.

    A session is live iff expires_at is strictly in the future AND the token
    still verifies cryptographically. Logout deletes the row; a user may hold
    any number of concurrent sessions (one per device/login).
    """

    token: str
    user_id: int
    expires_at: str  # ISO 8601, UTC
    id: int | None = None
    created_at: str | None = None
