"""
tests/test_api_projects.py -- Integration tests for project and membership routes.

Every scenario builds its own project and accounts through the public API, so
tests stay independent while sharing one module-scoped TestClient.

Coverage:
  - Project CRUD and the role each route demands
  - not_a_member vs insufficient_permissions on guarded routes
  - Member add / role change / remove, including the "admin cannot touch
    another admin" rule and owner self-removal -> 409
  - Ownership transfer
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from conftest import Account


@dataclass
class Team:
    project_id: int
    owner: Account
    admin: Account
    member: Account
    viewer: Account


@pytest.fixture
def team(api_client: tuple[TestClient, str], new_account) -> Team:
    """A project with one account at each role, added by the owner."""
    client, _admin = api_client
    owner = new_account("Owner")
    resp = client.post("/api/v1/projects", json={"name": "Tracker", "description": "Core"}, headers=owner.headers)
    assert resp.status_code == 201, resp.text
    project_id = resp.json()["id"]

    accounts = {}
    for role in ("admin", "member", "viewer"):
        account = new_account(role.capitalize())
        added = client.post(
            f"/api/v1/projects/{project_id}/members",
            json={"email": account.email, "role": role},
            headers=owner.headers,
        )
        assert added.status_code == 201, added.text
        accounts[role] = account
    return Team(project_id=project_id, owner=owner, **accounts)


class TestProjectRoutes:
    def test_create_makes_caller_owner(self, api_client: tuple[TestClient, str], new_account) -> None:
        client, _admin = api_client
        account = new_account("Creator")
        resp = client.post("/api/v1/projects", json={"name": "Alpha"}, headers=account.headers)
        assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
        data = resp.json()
        assert data["role"] == "owner"
        assert data["created_by"] == account.id
        assert data["description"] == ""

    def test_create_requires_auth(self, api_client: tuple[TestClient, str]) -> None:
        client, _admin = api_client
        assert client.post("/api/v1/projects", json={"name": "Alpha"}).status_code == 401

    def test_list_only_own_projects(self, api_client: tuple[TestClient, str], team: Team, new_account) -> None:
        client, _admin = api_client
        outsider = new_account("Outsider")
        assert client.get("/api/v1/projects", headers=outsider.headers).json() == []
        listed = client.get("/api/v1/projects", headers=team.viewer.headers).json()
        assert [(p["id"], p["role"]) for p in listed] == [(team.project_id, "viewer")]

    def test_get_as_viewer(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.get(f"/api/v1/projects/{team.project_id}", headers=team.viewer.headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["name"] == "Tracker"
        assert resp.json()["role"] == "viewer"

    def test_non_member_gets_not_a_member(self, api_client: tuple[TestClient, str], team: Team, new_account) -> None:
        client, _admin = api_client
        outsider = new_account("Outsider")
        resp = client.get(f"/api/v1/projects/{team.project_id}", headers=outsider.headers)
        assert resp.status_code == 403, resp.text
        assert resp.json()["error"]["code"] == "not_a_member"

    def test_site_admin_is_not_implicitly_a_member(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, admin_token = api_client
        resp = client.get(f"/api/v1/projects/{team.project_id}", headers={"Authorization": f"Bearer {admin_token}"})
        assert resp.status_code == 403

    def test_viewer_cannot_update(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.patch(f"/api/v1/projects/{team.project_id}", json={"name": "X"}, headers=team.viewer.headers)
        assert resp.status_code == 403, resp.text
        error = resp.json()["error"]
        assert error["code"] == "insufficient_permissions"
        assert "admin" in error["message"]
        assert "viewer" in error["message"]

    def test_admin_can_update(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.patch(
            f"/api/v1/projects/{team.project_id}", json={"description": "Renamed"}, headers=team.admin.headers
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["description"] == "Renamed"
        assert resp.json()["name"] == "Tracker"

    def test_empty_update_rejected(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.patch(f"/api/v1/projects/{team.project_id}", json={}, headers=team.owner.headers)
        assert resp.status_code == 400, resp.text

    def test_admin_cannot_delete(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.delete(f"/api/v1/projects/{team.project_id}", headers=team.admin.headers)
        assert resp.status_code == 403, resp.text

    def test_owner_deletes(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.delete(f"/api/v1/projects/{team.project_id}", headers=team.owner.headers)
        assert resp.status_code == 200, resp.text
        after = client.get(f"/api/v1/projects/{team.project_id}", headers=team.owner.headers)
        assert after.status_code == 403
        assert after.json()["error"]["code"] == "not_a_member"


class TestMemberRoutes:
    def test_list_members_owner_first(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.get(f"/api/v1/projects/{team.project_id}/members", headers=team.viewer.headers)
        assert resp.status_code == 200, resp.text
        roles = [m["role"] for m in resp.json()]
        assert roles == ["owner", "admin", "member", "viewer"]
        assert resp.json()[0]["email"] == team.owner.email

    def test_admin_adds_member(self, api_client: tuple[TestClient, str], team: Team, new_account) -> None:
        client, _admin = api_client
        newcomer = new_account("Newcomer")
        resp = client.post(
            f"/api/v1/projects/{team.project_id}/members",
            json={"email": newcomer.email},
            headers=team.admin.headers,
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["role"] == "member"
        assert resp.json()["user_id"] == newcomer.id

    def test_add_existing_member_conflict(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.post(
            f"/api/v1/projects/{team.project_id}/members",
            json={"email": team.viewer.email, "role": "viewer"},
            headers=team.owner.headers,
        )
        assert resp.status_code == 409, resp.text

    def test_add_unknown_email(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.post(
            f"/api/v1/projects/{team.project_id}/members",
            json={"email": "nobody-here@example.com"},
            headers=team.owner.headers,
        )
        assert resp.status_code == 404, resp.text

    def test_owner_role_cannot_be_granted(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.patch(
            f"/api/v1/projects/{team.project_id}/members/{team.member.id}",
            json={"role": "owner"},
            headers=team.owner.headers,
        )
        assert resp.status_code == 422, resp.text

    def test_member_cannot_add(self, api_client: tuple[TestClient, str], team: Team, new_account) -> None:
        client, _admin = api_client
        newcomer = new_account("Newcomer")
        resp = client.post(
            f"/api/v1/projects/{team.project_id}/members",
            json={"email": newcomer.email, "role": "viewer"},
            headers=team.member.headers,
        )
        assert resp.status_code == 403, resp.text

    def test_owner_promotes_member(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.patch(
            f"/api/v1/projects/{team.project_id}/members/{team.member.id}",
            json={"role": "admin"},
            headers=team.owner.headers,
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["role"] == "admin"

    def test_admin_cannot_demote_admin(self, api_client: tuple[TestClient, str], team: Team, new_account) -> None:
        client, _admin = api_client
        second = new_account("Second")
        client.post(
            f"/api/v1/projects/{team.project_id}/members",
            json={"email": second.email, "role": "admin"},
            headers=team.owner.headers,
        )
        resp = client.patch(
            f"/api/v1/projects/{team.project_id}/members/{second.id}",
            json={"role": "viewer"},
            headers=team.admin.headers,
        )
        assert resp.status_code == 403, resp.text

    def test_admin_cannot_remove_admin(self, api_client: tuple[TestClient, str], team: Team, new_account) -> None:
        client, _admin = api_client
        second = new_account("Second")
        client.post(
            f"/api/v1/projects/{team.project_id}/members",
            json={"email": second.email, "role": "admin"},
            headers=team.owner.headers,
        )
        resp = client.delete(f"/api/v1/projects/{team.project_id}/members/{second.id}", headers=team.admin.headers)
        assert resp.status_code == 403, resp.text
        assert resp.json()["error"]["code"] == "insufficient_permissions"

    def test_admin_removes_member(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.delete(
            f"/api/v1/projects/{team.project_id}/members/{team.member.id}", headers=team.admin.headers
        )
        assert resp.status_code == 200, resp.text
        after = client.get(f"/api/v1/projects/{team.project_id}", headers=team.member.headers)
        assert after.status_code == 403

    def test_viewer_can_leave(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.delete(
            f"/api/v1/projects/{team.project_id}/members/{team.viewer.id}", headers=team.viewer.headers
        )
        assert resp.status_code == 200, resp.text

    def test_viewer_cannot_remove_others(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.delete(
            f"/api/v1/projects/{team.project_id}/members/{team.member.id}", headers=team.viewer.headers
        )
        assert resp.status_code == 403, resp.text

    def test_owner_cannot_leave(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.delete(
            f"/api/v1/projects/{team.project_id}/members/{team.owner.id}", headers=team.owner.headers
        )
        assert resp.status_code == 409, resp.text
        assert resp.json()["error"]["code"] == "ownership_transfer_required"

    def test_remove_non_member(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.delete(f"/api/v1/projects/{team.project_id}/members/999999", headers=team.owner.headers)
        assert resp.status_code == 404, resp.text


class TestOwnershipTransfer:
    def test_transfer_then_old_owner_can_leave(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.post(
            f"/api/v1/projects/{team.project_id}/transfer",
            json={"user_id": team.admin.id},
            headers=team.owner.headers,
        )
        assert resp.status_code == 200, resp.text
        roles = {m["user_id"]: m["role"] for m in resp.json()}
        assert roles[team.admin.id] == "owner"
        assert roles[team.owner.id] == "admin"

        leave = client.delete(
            f"/api/v1/projects/{team.project_id}/members/{team.owner.id}", headers=team.owner.headers
        )
        assert leave.status_code == 200, leave.text

    def test_only_owner_transfers(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.post(
            f"/api/v1/projects/{team.project_id}/transfer",
            json={"user_id": team.member.id},
            headers=team.admin.headers,
        )
        assert resp.status_code == 403, resp.text

    def test_transfer_to_non_member(self, api_client: tuple[TestClient, str], team: Team, new_account) -> None:
        client, _admin = api_client
        outsider = new_account("Outsider")
        resp = client.post(
            f"/api/v1/projects/{team.project_id}/transfer",
            json={"user_id": outsider.id},
            headers=team.owner.headers,
        )
        assert resp.status_code == 404, resp.text

    def test_transfer_to_self(self, api_client: tuple[TestClient, str], team: Team) -> None:
        client, _admin = api_client
        resp = client.post(
            f"/api/v1/projects/{team.project_id}/transfer",
            json={"user_id": team.owner.id},
            headers=team.owner.headers,
        )
        assert resp.status_code == 400, resp.text
