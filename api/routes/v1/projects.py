"""
api/routes/v1/projects.py -- Project and membership routes guarded by project roles.

Routes and the minimum project role each requires:
  GET    /projects                                 -- any authenticated user (own projects)
  POST   /projects                                 -- any authenticated user; creator becomes owner
  GET    /projects/{project_id}                    -- viewer
  PATCH  /projects/{project_id}                    -- admin
  DELETE /projects/{project_id}                    -- owner (exact)
  GET    /projects/{project_id}/members            -- viewer
  POST   /projects/{project_id}/members            -- admin
  PATCH  /projects/{project_id}/members/{user_id}  -- admin, and must outrank the target
  DELETE /projects/{project_id}/members/{user_id}  -- viewer to leave; otherwise admin outranking the target
  POST   /projects/{project_id}/transfer           -- owner (exact)

The role checks themselves live in auth/ (require_role guards and the
ensure_can_* rules); these handlers only sequence store calls around them.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import (
    MemberAdd,
    MemberPatch,
    MemberResponse,
    MessageResponse,
    OwnershipTransfer,
    ProjectCreate,
    ProjectPatch,
    ProjectResponse,
)
from auth.access import Role, ensure_can_assign, ensure_can_remove
from auth.dependencies import (
    ProjectAccess,
    get_current_user,
    require_owner,
    require_project_admin,
    require_viewer,
)
from auth.errors import AlreadyExistsError, InvalidInputError, NotFoundError
from auth.models import User
from auth.store import UserStore
from projects.models import Project
from projects.store import ProjectStore

router = APIRouter()


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(request: Request, user: User = Depends(get_current_user)) -> list[ProjectResponse]:
    """List the projects the caller belongs to, most recently updated first."""
    store: ProjectStore = request.app.state.project_store
    rows = []
    for project in store.list_for_user(user.id):
        role = store.get_role(project.id, user.id)
        rows.append(ProjectResponse.from_project(project, role.label if role else None))
    return rows


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    request: Request,
    body: ProjectCreate,
    user: User = Depends(get_current_user),
) -> ProjectResponse:
    """Create a project. The caller becomes its owner in the same transaction."""
    store: ProjectStore = request.app.state.project_store
    project_id = store.create_project(Project(name=body.name, description=body.description, created_by=user.id))
    return ProjectResponse.from_project(store.get_project(project_id), Role.OWNER.label)


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(request: Request, access: ProjectAccess = Depends(require_viewer)) -> ProjectResponse:
    project = _load_project(request, access.project_id)
    return ProjectResponse.from_project(project, access.role.label)


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    request: Request,
    body: ProjectPatch,
    access: ProjectAccess = Depends(require_project_admin),
) -> ProjectResponse:
    """Rename or re-describe a project. Project admins and the owner only."""
    store: ProjectStore = request.app.state.project_store
    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise InvalidInputError("No fields to update.")
    if not store.update_project(access.project_id, **updates):
        raise NotFoundError("Project not found.")
    return ProjectResponse.from_project(_load_project(request, access.project_id), access.role.label)


@router.delete("/projects/{project_id}", response_model=MessageResponse)
def delete_project(request: Request, access: ProjectAccess = Depends(require_owner)) -> MessageResponse:
    """Delete a project and every membership in it. Owner only."""
    store: ProjectStore = request.app.state.project_store
    if not store.delete_project(access.project_id):
        raise NotFoundError("Project not found.")
    return MessageResponse(message="Project deleted.")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/members", response_model=list[MemberResponse])
def list_members(request: Request, access: ProjectAccess = Depends(require_viewer)) -> list[MemberResponse]:
    store: ProjectStore = request.app.state.project_store
    users: UserStore = request.app.state.user_store
    return [MemberResponse.from_membership(m, users.get_by_id(m.user_id)) for m in store.list_members(access.project_id)]


@router.post("/projects/{project_id}/members", response_model=MemberResponse, status_code=201)
def add_member(
    request: Request,
    body: MemberAdd,
    access: ProjectAccess = Depends(require_project_admin),
) -> MemberResponse:
    """Add a registered user to the project with a role the caller is allowed to grant."""
    store: ProjectStore = request.app.state.project_store
    users: UserStore = request.app.state.user_store

    new_role = Role.parse(body.role.value)
    ensure_can_assign(access.role, None, new_role)

    target = users.get_by_email(body.email)
    if target is None:
        raise NotFoundError("User not found.")
    try:
        membership = store.add_member(access.project_id, target.id, new_role)
    except IntegrityError as exc:
        raise AlreadyExistsError("User is already a member of this project.") from exc
    return MemberResponse.from_membership(membership, target)


@router.patch("/projects/{project_id}/members/{user_id}", response_model=MemberResponse)
def change_member_role(
    request: Request,
    user_id: int,
    body: MemberPatch,
    access: ProjectAccess = Depends(require_project_admin),
) -> MemberResponse:
    """Change a member's role. The caller must outrank both the current and the new role."""
    store: ProjectStore = request.app.state.project_store
    users: UserStore = request.app.state.user_store

    target_role = store.get_role(access.project_id, user_id)
    if target_role is None:
        raise NotFoundError("User is not a member of this project.")
    new_role = Role.parse(body.role.value)
    ensure_can_assign(access.role, target_role, new_role)

    store.set_role(access.project_id, user_id, new_role)
    membership = next(m for m in store.list_members(access.project_id) if m.user_id == user_id)
    return MemberResponse.from_membership(membership, users.get_by_id(user_id))


@router.delete("/projects/{project_id}/members/{user_id}", response_model=MessageResponse)
def remove_member(
    request: Request,
    user_id: int,
    access: ProjectAccess = Depends(require_viewer),
) -> MessageResponse:
    """Remove a member, or leave the project when user_id is the caller.

    Admins may remove members and viewers, never another admin or the owner.
    The owner may remove anyone but themselves -- leaving requires a transfer.
    """
    store: ProjectStore = request.app.state.project_store

    target_role = store.get_role(access.project_id, user_id)
    if target_role is None:
        raise NotFoundError("User is not a member of this project.")
    ensure_can_remove(access.user.id, access.role, user_id, target_role)

    store.remove_member(access.project_id, user_id)
    return MessageResponse(message="Member removed.")


@router.post("/projects/{project_id}/transfer", response_model=list[MemberResponse])
def transfer_ownership(
    request: Request,
    body: OwnershipTransfer,
    access: ProjectAccess = Depends(require_owner),
) -> list[MemberResponse]:
    """Hand ownership to another member. The previous owner becomes an admin."""
    store: ProjectStore = request.app.state.project_store
    users: UserStore = request.app.state.user_store

    if body.user_id == access.user.id:
        raise InvalidInputError("You already own this project.")
    if store.get_role(access.project_id, body.user_id) is None:
        raise NotFoundError("User is not a member of this project.")

    store.transfer_ownership(access.project_id, access.user.id, body.user_id)
    return [MemberResponse.from_membership(m, users.get_by_id(m.user_id)) for m in store.list_members(access.project_id)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_project(request: Request, project_id: int) -> Project:
    project = request.app.state.project_store.get_project(project_id)
    if project is None:
        raise NotFoundError("Project not found.")
    return project
