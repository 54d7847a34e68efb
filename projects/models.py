"""
projects/models.py -- Domain dataclasses for projects and their memberships.

These are pure data containers with zero logic. Role comparison lives in
auth/access.py; persistence lives in projects/store.py.

ProjectMembership is the sole source of project-level authorization: there is
no separate global permission table.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.access import Role


@dataclass
class Project:
    """A project (tenant) that issues, versions and members hang off.

    id is None before the record is written to the database.
    """

    name: str
    created_by: int
    description: str = ""
    id: int | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class ProjectMembership:
    """A (project_id, user_id) pair -- unique -- with the user's role in that project."""

    project_id: int
    user_id: int
    role: Role
    added_at: str = ""  # ISO 8601
