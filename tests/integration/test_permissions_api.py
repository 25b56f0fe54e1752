import pytest
from fastapi.testclient import TestClient

from aclkeeper.api.main import app
from aclkeeper.api.database import get_db
from aclkeeper.api.resources import ResourceLookupRegistry, identity_lookup, get_resource_lookups
from aclkeeper.access_control.permissions import AccessRoleIds, PrincipalType
from aclkeeper.access_control.service import PermissionService

BASE = "/api/v1/permissions"

OWNER = {"X-User-ID": "owner"}
VIEWER = {"X-User-ID": "viewer"}


@pytest.fixture
def client(session, seeded_roles):
    original_overrides = app.dependency_overrides.copy()

    def override_get_db():
        yield session

    lookups = ResourceLookupRegistry(fallback=identity_lookup)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_resource_lookups] = lambda: lookups

    yield TestClient(app)

    app.dependency_overrides = original_overrides


@pytest.fixture
def shared_agent(session):
    """Agent a1: owner holds OWNER, viewer holds VIEWER."""
    service = PermissionService()
    service.grant_permission(session, PrincipalType.USER, "owner", "agent", "a1", AccessRoleIds.AGENT_OWNER, "owner")
    service.grant_permission(session, PrincipalType.USER, "viewer", "agent", "a1", AccessRoleIds.AGENT_VIEWER, "owner")
    return "a1"


def test_health(client):
    assert client.get("/health/live").json() == {"status": "alive"}


def test_list_roles(client):
    response = client.get(f"{BASE}/types/agent/roles", headers=VIEWER)
    assert response.status_code == 200
    roles = response.json()
    assert [r["access_role_id"] for r in roles] == ["agent_viewer", "agent_editor", "agent_owner"]
    assert [r["perm_bits"] for r in roles] == [1, 3, 15]


def test_list_roles_requires_user_and_known_type(client):
    assert client.get(f"{BASE}/types/agent/roles").status_code == 401
    assert client.get(f"{BASE}/types/spreadsheet/roles", headers=VIEWER).status_code == 400


def test_accessible_resources(client, session, shared_agent):
    PermissionService().grant_permission(
        session, PrincipalType.PUBLIC, None, "agent", "a9", AccessRoleIds.AGENT_VIEWER, "owner"
    )

    response = client.get(f"{BASE}/types/agent/accessible", headers=VIEWER)
    assert response.status_code == 200
    assert response.json()["resource_ids"] == ["a1", "a9"]

    response = client.get(f"{BASE}/types/agent/accessible", params={"required_permission": 3}, headers=VIEWER)
    assert response.json()["resource_ids"] == []

    response = client.get(f"{BASE}/types/agent/accessible", params={"required_permission": 0}, headers=VIEWER)
    assert response.status_code == 400


def test_resource_entries_require_share(client, shared_agent):
    assert client.get(f"{BASE}/agent/a1", headers=VIEWER).status_code == 403

    response = client.get(f"{BASE}/agent/a1", headers=OWNER)
    assert response.status_code == 200
    body = response.json()
    assert body["resource_id"] == "a1"
    assert {(e["principal_id"], e["perm_bits"]) for e in body["entries"]} == {("owner", 15), ("viewer", 1)}


def test_bulk_update(client, session, shared_agent, make_group):
    group = make_group("Reviewers", member_ids=["reviewer"])

    response = client.put(
        f"{BASE}/agent/a1",
        headers=OWNER,
        json={
            "updated": [
                {"type": "group", "id": group.id, "access_role_id": "agent_editor", "name": "Reviewers"},
                {"type": "user", "id": "viewer", "access_role_id": "agent_editor"},
                {"type": "user", "id": "ghost", "access_role_id": "agent_admin"},
            ],
            "removed": [{"type": "user", "id": "someone"}],
        },
    )

    assert response.status_code == 200
    result = response.json()
    assert [p["id"] for p in result["granted"]] == [group.id]
    assert [p["id"] for p in result["updated"]] == ["viewer"]
    assert [p["id"] for p in result["revoked"]] == ["someone"]
    assert len(result["errors"]) == 1
    assert result["errors"][0]["principal"]["id"] == "ghost"

    service = PermissionService()
    assert service.check_permission(session, "reviewer", None, "agent", "a1", 3) is True
    assert service.get_effective_permissions(session, "viewer", None, "agent", "a1") == 3


def test_bulk_update_requires_share(client, shared_agent):
    response = client.put(f"{BASE}/agent/a1", headers=VIEWER, json={"updated": [], "removed": []})
    assert response.status_code == 403


def test_effective_permissions_with_role_label(client, shared_agent):
    response = client.get(f"{BASE}/agent/a1/effective", headers=VIEWER)
    assert response.status_code == 200
    assert response.json() == {
        "resource_type": "agent",
        "resource_id": "a1",
        "perm_bits": 1,
        "access_role_id": "agent_viewer",
    }

    response = client.get(f"{BASE}/agent/a1/effective", headers={"X-User-ID": "stranger"})
    assert response.json()["perm_bits"] == 0
    assert response.json()["access_role_id"] is None


def test_metrics_endpoint(client, shared_agent):
    client.get(f"{BASE}/agent/a1", headers=VIEWER)

    response = client.get("/metrics/")
    assert response.status_code == 200
    assert "acl_guard_decisions_total" in response.text


def test_unknown_resource_type_is_400_for_admins_too(client):
    for headers in (VIEWER, {"X-User-ID": "root", "X-User-Role": "ADMIN"}):
        response = client.get(f"{BASE}/spreadsheet/s1", headers=headers)
        assert response.status_code == 400
        assert "Invalid resourceType: spreadsheet" in response.json()["detail"]

        put = client.put(f"{BASE}/spreadsheet/s1", headers=headers, json={"updated": [], "removed": []})
        assert put.status_code == 400


@pytest.mark.parametrize("resource_id", ["roles", "accessible", "types"])
def test_any_resource_id_is_addressable(client, session, resource_id):
    PermissionService().grant_permission(
        session, PrincipalType.USER, "owner", "agent", resource_id, AccessRoleIds.AGENT_OWNER, "owner"
    )

    response = client.get(f"{BASE}/agent/{resource_id}", headers=OWNER)
    assert response.status_code == 200
    assert response.json()["resource_id"] == resource_id
    assert [e["principal_id"] for e in response.json()["entries"]] == ["owner"]
