"""
auth/access.py -- Project role hierarchy and membership-management rules.

Roles form a strict total order: viewer < member < admin < owner. Role is an
IntEnum, so the ordering is the language's integer ordering rather than a
lookup table -- Role.ADMIN >= Role.MEMBER is simply True.

Roles are persisted as lowercase labels ("viewer", ...). Role.parse() is the
one place labels turn back into Role values.

Membership management (remove / change role) follows one asymmetric rule:
the actor must be at least admin AND strictly outrank the target. An admin can
therefore manage members and viewers but never another admin or the owner.
The owner is the single exception for self-removal: leaving would orphan the
project, so it requires transfer_ownership() first and fails with its own
error code rather than a generic permission failure.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

from enum import IntEnum

from auth.errors import InsufficientPermissionsError, InvalidInputError, OwnershipTransferRequiredError


class Role(IntEnum):
    VIEWER = 1
    MEMBER = 2
    ADMIN = 3
    OWNER = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: Role | str) -> Role:
        """Return the Role for a Role or a label. Raises ValueError on unknown labels."""
        if isinstance(value, Role):
            return value
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValueError(f"Unknown role: {value!r}") from None


ROLE_LABELS: tuple[str, ...] = tuple(r.label for r in Role)


def has_permission(user_role: Role | str, required_role: Role | str) -> bool:
    """Return True if user_role ranks at or above required_role."""
    return Role.parse(user_role) >= Role.parse(required_role)


def ensure_can_remove(actor_id: int, actor_role: Role, target_id: int, target_role: Role) -> None:
    """Raise unless actor may remove target from the project.

    - owner removing themselves      -> OwnershipTransferRequiredError
    - anyone else removing themselves -> allowed (leaving the project)
    - otherwise actor must be >= admin and strictly outrank target
    """
    if actor_id == target_id:
        if actor_role is Role.OWNER:
            raise OwnershipTransferRequiredError()
        return
    if actor_role < Role.ADMIN or actor_role <= target_role:
        raise InsufficientPermissionsError(
            f"Insufficient permissions. A {actor_role.label} cannot remove a {target_role.label}."
        )


def ensure_can_assign(actor_role: Role, target_role: Role | None, new_role: Role) -> None:
    """Raise unless actor may give a user new_role.

    target_role is the user's current role, or None when adding a new member.
    Ownership is never granted here -- only transfer_ownership() moves it.
    """
    if new_role is Role.OWNER:
        raise InvalidInputError("Ownership can only be granted by transferring it.")
    if actor_role < Role.ADMIN:
        raise InsufficientPermissionsError(
            f"Insufficient permissions. Required: admin, Your role: {actor_role.label}"
        )
    if target_role is not None and actor_role <= target_role:
        raise InsufficientPermissionsError(
            f"Insufficient permissions. A {actor_role.label} cannot change the role of a {target_role.label}."
        )
    if actor_role <= new_role:
        raise InsufficientPermissionsError(
            f"Insufficient permissions. A {actor_role.label} cannot grant the {new_role.label} role."
        )
