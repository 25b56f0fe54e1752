import pytest

from aclkeeper.access_control.exceptions import PermissionValidationError
from aclkeeper.access_control.grants import GrantEngine
from aclkeeper.access_control.permissions import AccessRoleIds, PermissionBits, PrincipalType, ResourceType
from aclkeeper.storage.repositories.acl_entry_repository import AclEntryRepository

AGENT = ResourceType.AGENT


@pytest.fixture
def grants():
    return GrantEngine()


@pytest.fixture
def acl_repo(grants):
    return grants.acl_repo


def _share(principal_type, principal_id, access_role_id=None, **extra):
    item = {"type": principal_type, "id": principal_id}
    if access_role_id:
        item["access_role_id"] = access_role_id
    item.update(extra)
    return item


# --- grant ---

def test_grant_creates_entry(session, grants):
    entry = grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", 1, "admin")

    assert entry.perm_bits == 1
    assert entry.principal_type == "user"
    assert entry.granted_by == "admin"
    assert entry.granted_at is not None


def test_regrant_replaces_bits(session, grants, acl_repo):
    first = grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", 15, "admin")
    second = grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", 1, "owner", role_id="r-view")

    assert second.id == first.id
    assert second.perm_bits == 1
    assert second.granted_by == "owner"
    assert second.role_id == "r-view"
    assert len(acl_repo.find(session, resource_type=AGENT, resource_id="a1")) == 1


def test_public_grant_is_unique_per_resource(session, grants, acl_repo):
    grants.grant_permission(session, PrincipalType.PUBLIC, None, AGENT, "a1", 1, "admin")
    grants.grant_permission(session, PrincipalType.PUBLIC, None, AGENT, "a1", 3, "admin")

    entries = acl_repo.find(session, principal_type=PrincipalType.PUBLIC, resource_id="a1")
    assert len(entries) == 1
    assert entries[0].perm_bits == 3
    assert entries[0].principal_id is None


@pytest.mark.parametrize(
    "principal_type, principal_id, match",
    [
        ("robot", "u1", "Invalid principal type"),
        (PrincipalType.USER, None, "Principal ID is required"),
        (PrincipalType.GROUP, "", "Principal ID is required"),
        (PrincipalType.ROLE, "   ", "Invalid role ID"),
        (PrincipalType.PUBLIC, "everyone", "must not have a principal ID"),
    ],
)
def test_grant_rejects_bad_principals(session, grants, principal_type, principal_id, match):
    with pytest.raises(PermissionValidationError, match=match):
        grants.grant_permission(session, principal_type, principal_id, AGENT, "a1", 1, "admin")


def test_grant_rejects_bad_resource(session, grants):
    with pytest.raises(PermissionValidationError, match="Invalid resourceType"):
        grants.grant_permission(session, PrincipalType.USER, "u1", "spreadsheet", "s1", 1, "admin")
    with pytest.raises(PermissionValidationError, match="Invalid resource ID"):
        grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "", 1, "admin")
    with pytest.raises(PermissionValidationError):
        grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", -1, "admin")


# --- revoke ---

def test_revoke_missing_grant_returns_zero(session, grants):
    assert grants.revoke_permission(session, PrincipalType.USER, "nobody", AGENT, "a1") == 0


def test_revoke_deletes_only_that_tuple(session, grants, acl_repo):
    grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", 1, "admin")
    grants.grant_permission(session, PrincipalType.USER, "u2", AGENT, "a1", 1, "admin")
    grants.grant_permission(session, PrincipalType.PUBLIC, None, AGENT, "a1", 1, "admin")

    assert grants.revoke_permission(session, PrincipalType.USER, "u1", AGENT, "a1") == 1
    assert grants.revoke_permission(session, PrincipalType.PUBLIC, None, AGENT, "a1") == 1

    remaining = acl_repo.find(session, resource_id="a1")
    assert [(e.principal_type, e.principal_id) for e in remaining] == [("user", "u2")]


# --- modify ---

def test_modify_adds_and_removes_bits(session, grants):
    grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", 3, "admin")

    entry = grants.modify_permission_bits(
        session, PrincipalType.USER, "u1", AGENT, "a1",
        add_bits=PermissionBits.SHARE, remove_bits=PermissionBits.EDIT,
    )

    assert entry.perm_bits == PermissionBits.VIEW | PermissionBits.SHARE


def test_modify_without_entry_creates_nothing(session, grants, acl_repo):
    assert grants.modify_permission_bits(session, PrincipalType.USER, "u1", AGENT, "a1", add_bits=1) is None
    assert acl_repo.find(session, resource_id="a1") == []


# --- remove all ---

def test_remove_all_permissions(session, grants, acl_repo):
    grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", 15, "admin")
    grants.grant_permission(session, PrincipalType.GROUP, "g1", AGENT, "a1", 1, "admin")
    grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a2", 1, "admin")

    assert grants.remove_all_permissions(session, AGENT, "a1") == 2
    assert grants.remove_all_permissions(session, AGENT, "a1") == 0
    assert len(acl_repo.find(session, resource_id="a2")) == 1


# --- bulk update ---

def test_bulk_update_partial_failure(session, grants, seeded_roles):
    result = grants.bulk_update_resource_permissions(
        session,
        AGENT,
        "a1",
        updated_principals=[
            _share("user", "u1", AccessRoleIds.AGENT_VIEWER),
            _share("user", "u2", "agent_nonexistent"),
            _share("group", "g1", AccessRoleIds.AGENT_EDITOR),
        ],
        granted_by="owner",
    )

    assert [p.id for p in result.granted] == ["u1", "g1"]
    assert len(result.errors) == 1
    assert result.errors[0].principal["id"] == "u2"
    assert "agent_nonexistent" in result.errors[0].error


def test_bulk_update_reports_missing_role_and_bad_principal(session, grants, seeded_roles):
    result = grants.bulk_update_resource_permissions(
        session,
        AGENT,
        "a1",
        updated_principals=[
            _share("user", "u1"),
            _share("martian", "m1", AccessRoleIds.AGENT_VIEWER),
            _share("user", None, AccessRoleIds.AGENT_VIEWER),
            _share("user", "u4", AccessRoleIds.PROMPTGROUP_VIEWER),
        ],
    )

    assert result.granted == []
    assert len(result.errors) == 4


def test_bulk_update_separates_granted_and_updated(session, grants, acl_repo, seeded_roles):
    grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", 1, "admin")

    result = grants.bulk_update_resource_permissions(
        session,
        AGENT,
        "a1",
        updated_principals=[
            _share("user", "u1", AccessRoleIds.AGENT_OWNER, name="Ada"),
            _share("public", None, AccessRoleIds.AGENT_VIEWER),
        ],
        revoked_principals=[_share("user", "u9")],
        granted_by="owner",
    )

    assert [p.id for p in result.updated] == ["u1"]
    assert result.updated[0].name == "Ada"
    assert [p.type for p in result.granted] == [PrincipalType.PUBLIC]
    assert [p.id for p in result.revoked] == ["u9"]

    entry = acl_repo.find_one(session, acl_repo.key_clause(PrincipalType.USER, "u1", AGENT, "a1"))
    assert entry.perm_bits == 15
    assert entry.role_id == seeded_roles[AccessRoleIds.AGENT_OWNER].id


def test_bulk_update_revokes(session, grants, acl_repo, seeded_roles):
    grants.grant_permission(session, PrincipalType.GROUP, "g1", AGENT, "a1", 3, "admin")

    result = grants.bulk_update_resource_permissions(
        session, AGENT, "a1", revoked_principals=[_share("group", "g1"), {"id": "no-type"}]
    )

    assert [p.id for p in result.revoked] == ["g1"]
    assert len(result.errors) == 1
    assert acl_repo.find(session, resource_id="a1") == []


def test_bulk_revoke_touches_only_the_listed_tuple(session, grants, acl_repo, seeded_roles):
    grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a1", 1, "admin")
    grants.grant_permission(session, PrincipalType.USER, "u1", AGENT, "a2", 1, "admin")
    grants.grant_permission(session, PrincipalType.USER, "u2", AGENT, "a1", 1, "admin")

    result = grants.bulk_update_resource_permissions(
        session, AGENT, "a1", revoked_principals=[_share("user", "u1"), _share("user", "never-shared")]
    )

    assert [p.id for p in result.revoked] == ["u1", "never-shared"]
    assert result.errors == []
    remaining = {(e.principal_id, e.resource_id) for e in acl_repo.find(session)}
    assert remaining == {("u1", "a2"), ("u2", "a1")}


def test_bulk_update_item_failure_does_not_poison_others(session, seeded_roles, monkeypatch):
    grants = GrantEngine()
    real_upsert = AclEntryRepository.upsert

    def flaky_upsert(self, session, principal_type, principal_id, *args, **kwargs):
        if principal_id == "u-broken":
            raise RuntimeError("disk full")
        return real_upsert(self, session, principal_type, principal_id, *args, **kwargs)

    monkeypatch.setattr(AclEntryRepository, "upsert", flaky_upsert)

    result = grants.bulk_update_resource_permissions(
        session,
        AGENT,
        "a1",
        updated_principals=[
            _share("user", "u-broken", AccessRoleIds.AGENT_VIEWER),
            _share("user", "u2", AccessRoleIds.AGENT_VIEWER),
        ],
    )

    assert [p.id for p in result.granted] == ["u2"]
    assert result.errors[0].error == "disk full"


@pytest.mark.parametrize(
    "kwargs, match",
    [
        ({"updated_principals": {"type": "user"}}, "updatedPrincipals must be an array"),
        ({"revoked_principals": "u1"}, "revokedPrincipals must be an array"),
    ],
)
def test_bulk_update_rejects_malformed_arguments(session, grants, kwargs, match):
    with pytest.raises(PermissionValidationError, match=match):
        grants.bulk_update_resource_permissions(session, AGENT, "a1", **kwargs)


def test_bulk_update_rejects_bad_resource(session, grants):
    with pytest.raises(PermissionValidationError):
        grants.bulk_update_resource_permissions(session, AGENT, "")
    with pytest.raises(PermissionValidationError):
        grants.bulk_update_resource_permissions(session, "spreadsheet", "s1")
