"""
API request and response models for IssueTrack REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
projects/models.py, which own the internal domain representation. Route
handlers map between the two. password_hash never appears in any response
model.

Separation of concerns: domain models = internal truth; api/ models = API contract.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import User
from projects.models import Project, ProjectMembership

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    viewer = "viewer"
    member = "member"
    admin = "admin"
    owner = "owner"


class AssignableRoleEnum(str, Enum):
    """Roles that can be granted directly. owner moves only via /transfer."""

    viewer = "viewer"
    member = "member"
    admin = "admin"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


# Email and name are trimmed on the way in, identically at register and login.
# Passwords are taken byte-for-byte: surrounding spaces are part of the secret.
_Trimmed = StringConstraints(strip_whitespace=True)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Only presence and length are checked here. The password strength policy
    is enforced by AuthService so the service layer stays authoritative.
    """

    email: Annotated[str, _Trimmed] = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: Annotated[str, _Trimmed] = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class LoginRequest(BaseModel):
    email: Annotated[str, _Trimmed] = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)
    # Issue the long-lived (7-day) token and session instead of the 1-hour one.
    remember: bool = False


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    status: str
    is_admin: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            status=user.status,
            is_admin=user.is_admin,
            created_at=user.created_at or "",
        )


class RegisterResponse(BaseModel):
    """Response for POST /register. token is null while approval is pending."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    token: Optional[str] = None
    message: str


class LoginResponse(BaseModel):
    """Response for POST /login and POST /refresh.

    The token is also set as an httpOnly cookie; the body copy serves
    non-browser clients that send it as a Bearer header.
    """

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    token: str
    token_type: str = "bearer"
    expires_in: int


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: str = Field(default="", max_length=5000)


class ProjectPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    created_by: int
    created_at: str
    updated_at: str
    # The caller's own role, when known.
    role: Optional[RoleEnum] = None

    @classmethod
    def from_project(cls, project: Project, role: Optional[str] = None) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            description=project.description,
            created_by=project.created_by,
            created_at=project.created_at,
            updated_at=project.updated_at,
            role=role,
        )


class MemberAdd(BaseModel):
    """Request body for POST /projects/{id}/members. Identify the user by email."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    role: AssignableRoleEnum = AssignableRoleEnum.member


class MemberPatch(BaseModel):
    role: AssignableRoleEnum


class OwnershipTransfer(BaseModel):
    user_id: int


class MemberResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    name: str
    role: RoleEnum
    added_at: str

    @classmethod
    def from_membership(cls, membership: ProjectMembership, user: Optional[User]) -> "MemberResponse":
        return cls(
            user_id=membership.user_id,
            email=user.email if user else "",
            name=user.name if user else "",
            role=membership.role.label,
            added_at=membership.added_at,
        )
