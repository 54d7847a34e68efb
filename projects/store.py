"""
projects/store.py -- SQLAlchemy Core persistence for projects and memberships.

Pattern: Repository + Data Mapper (same as auth/store.py).

Multi-row writes (project + owner membership, project + all memberships,
ownership transfer) run inside engine.begin() so they commit or roll back as
one unit. Every other method is a single statement.

Security:
  All queries use bound parameters. update_project() only accepts the column
  names in _MUTABLE_FIELDS; anything else raises ValueError before SQL is
  built.

Roles are stored as lowercase labels and mapped to auth.access.Role on read.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
)
from sqlalchemy.engine import Engine

from auth.access import Role
from projects.models import Project, ProjectMembership

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_projects = Table(
    "projects",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("created_by", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_members = Table(
    "project_members",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("role", String(16), nullable=False),
    Column("added_at", String(32), nullable=False),
    UniqueConstraint("project_id", "user_id", name="uq_project_member"),
)

_MUTABLE_FIELDS = {"name", "description"}


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode. Set per-connection; PRAGMAs are not pooled."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class ProjectStore:
    """Repository for Project and ProjectMembership entities."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> int:
        """Insert a project and make its creator the owner, atomically.

        Returns the new project ID.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _projects.insert().values(
                    name=project.name,
                    description=project.description,
                    created_by=project.created_by,
                    created_at=now,
                    updated_at=now,
                )
            )
            project_id = result.inserted_primary_key[0]
            conn.execute(
                _members.insert().values(
                    project_id=project_id,
                    user_id=project.created_by,
                    role=Role.OWNER.label,
                    added_at=now,
                )
            )
        return project_id

    def get_project(self, project_id: int) -> Project | None:
        with self.engine.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.id == project_id)).fetchone()
        return _row_to_project(row) if row is not None else None

    def list_for_user(self, user_id: int) -> list[Project]:
        """Projects the user belongs to, most recently updated first."""
        stmt = (
            select(_projects)
            .select_from(_projects.join(_members, _members.c.project_id == _projects.c.id))
            .where(_members.c.user_id == user_id)
            .order_by(_projects.c.updated_at.desc(), _projects.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_project(r) for r in rows]

    def update_project(self, project_id: int, **fields) -> bool:
        """Update name/description. Returns False if the project does not exist."""
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown project fields: {unknown!r}")
        values = {k: v for k, v in fields.items() if v is not None}
        values["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_projects.update().where(_projects.c.id == project_id).values(**values))
            conn.commit()
        return result.rowcount > 0

    def delete_project(self, project_id: int) -> bool:
        """Delete a project and all of its memberships in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(_members.delete().where(_members.c.project_id == project_id))
            result = conn.execute(_projects.delete().where(_projects.c.id == project_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def get_role(self, project_id: int, user_id: int) -> Role | None:
        """Return the user's role in the project, or None if not a member."""
        with self.engine.connect() as conn:
            label = conn.execute(
                select(_members.c.role).where(
                    (_members.c.project_id == project_id) & (_members.c.user_id == user_id)
                )
            ).scalar()
        return Role.parse(label) if label is not None else None

    def list_members(self, project_id: int) -> list[ProjectMembership]:
        """Members ordered by descending role, then join order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _members.select().where(_members.c.project_id == project_id).order_by(_members.c.id)
            ).fetchall()
        members = [_row_to_membership(r) for r in rows]
        members.sort(key=lambda m: m.role, reverse=True)
        return members

    def add_member(self, project_id: int, user_id: int, role: Role) -> ProjectMembership:
        """Add a user to a project.

        Raises sqlalchemy.exc.IntegrityError if the user is already a member.
        """
        added_at = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _members.insert().values(project_id=project_id, user_id=user_id, role=role.label, added_at=added_at)
            )
            conn.commit()
        return ProjectMembership(project_id=project_id, user_id=user_id, role=role, added_at=added_at)

    def set_role(self, project_id: int, user_id: int, role: Role) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _members.update()
                .where((_members.c.project_id == project_id) & (_members.c.user_id == user_id))
                .values(role=role.label)
            )
            conn.commit()
        return result.rowcount > 0

    def remove_member(self, project_id: int, user_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(
                _members.delete().where((_members.c.project_id == project_id) & (_members.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    def transfer_ownership(self, project_id: int, from_user_id: int, to_user_id: int) -> None:
        """Promote to_user_id to owner and demote from_user_id to admin, atomically.

        The caller verifies that from_user_id is the current owner and that
        to_user_id is already a member.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _members.update()
                .where((_members.c.project_id == project_id) & (_members.c.user_id == to_user_id))
                .values(role=Role.OWNER.label)
            )
            conn.execute(
                _members.update()
                .where((_members.c.project_id == project_id) & (_members.c.user_id == from_user_id))
                .values(role=Role.ADMIN.label)
            )

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        description=row.description or "",
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_membership(row) -> ProjectMembership:
    return ProjectMembership(
        project_id=row.project_id,
        user_id=row.user_id,
        role=Role.parse(row.role),
        added_at=row.added_at,
    )
