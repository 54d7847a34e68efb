"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and project access.

Token sources are checked in priority order:
  1. Authorization: Bearer <token> header -- API clients.
  2. "token" cookie -- set by the login flow for browser clients.

Both converge on AuthService.resolve(), which checks the signature and then
the session row. The resolved User (and, for project routes, the resolved
Role) is handed to the route as an ordinary dependency value -- nothing is
stashed on a request-wide side channel.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises UnauthenticatedError (401).
require_admin() wraps get_current_user() and raises ForbiddenError (403).
require_role(min_role) builds a guard for routes with a {project_id} path
  parameter: NotAMemberError if the user has no membership,
  InsufficientPermissionsError if the membership ranks below min_role.

Errors are the typed classes from auth/errors.py; api/main.py renders them.

Layer rule: may import fastapi (this module is part of the FastAPI dependency
injection system). Reads the stores from request.app.state and does not
import from api/ or projects/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Request

from auth.access import Role, has_permission
from auth.errors import ForbiddenError, InsufficientPermissionsError, NotAMemberError, UnauthenticatedError
from auth.models import User
from auth.tokens import COOKIE_NAME


@dataclass(frozen=True)
class ProjectAccess:
    """What a project-scoped route knows after the guard passed."""

    user: User
    project_id: int
    role: Role


def get_request_token(request: Request) -> str | None:
    """Extract the raw token from the Authorization header or the auth cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME) or None


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request. Returns None on any failure, never raises."""
    token = get_request_token(request)
    if not token:
        return None
    return request.app.state.auth_service.resolve(token)


def get_current_user(request: Request) -> User:
    """Require authentication. Raises UnauthenticatedError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise UnauthenticatedError()
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require a site administrator. 401 if unauthenticated, 403 if not admin."""
    if not user.is_admin:
        raise ForbiddenError("Admin access required.")
    return user


def require_role(min_role: Role) -> Callable[..., ProjectAccess]:
    """Build a dependency that admits members of {project_id} ranked >= min_role.

    Use as a FastAPI dependency:
        @router.patch("/projects/{project_id}")
        def route(access: ProjectAccess = Depends(require_role(Role.ADMIN))): ...
    """

    def guard(project_id: int, request: Request, user: User = Depends(get_current_user)) -> ProjectAccess:
        role = request.app.state.project_store.get_role(project_id, user.id)
        if role is None:
            raise NotAMemberError()
        if not has_permission(role, min_role):
            raise InsufficientPermissionsError(
                f"Insufficient permissions. Required: {min_role.label}, Your role: {role.label}"
            )
        return ProjectAccess(user=user, project_id=project_id, role=role)

    return guard


require_viewer = require_role(Role.VIEWER)
require_project_admin = require_role(Role.ADMIN)


def require_owner(access: ProjectAccess = Depends(require_role(Role.OWNER))) -> ProjectAccess:
    """Ownership-sensitive operations (delete project, transfer) demand role == owner.

    Equivalent to the >= owner rank check today, stated as an identity check so
    that adding a rank above owner could never silently widen these routes.
    """
    if access.role is not Role.OWNER:
        raise InsufficientPermissionsError("Only the project owner can perform this action.")
    return access
