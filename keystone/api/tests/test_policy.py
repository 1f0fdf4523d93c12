"""
Policy Engine Tests

Validates effective permission resolution:
1. Role grants decide single checks
2. "<resource>:manage" expands only for single checks
3. Inactive, missing or orphaned users are denied
4. Role changes apply on the next check
5. Denials through the Authorizer are audited
"""

import pytest

from keystone.api.access.audit import AuditAction, AuditFilter
from keystone.api.access.gate import Authorizer
from keystone.api.db.models import User
from keystone.api.db.repositories import PermissionRepository, UserRepository
from keystone.api.errors import ForbiddenError
from keystone.api.roles.schemas import RoleCreateRequest, RoleUpdateRequest
from keystone.api.roles.service import RoleService
from keystone.api.tests.conftest import context_for


async def _user_with_permissions(db_session, admin_context, name, permission_names):
    repo = PermissionRepository(db_session)
    ids = [(await repo.get_by_name(n)).id for n in permission_names]
    role = await RoleService(db_session).create(
        RoleCreateRequest(name=name, permission_ids=ids), admin_context
    )
    user = await UserRepository(db_session).add(
        User(
            email=f"{name}@example.com",
            password_hash="x",
            first_name="Role",
            last_name="Holder",
            role_id=role.id,
        )
    )
    await db_session.commit()
    return role, user


# ==================== Single Checks ====================


@pytest.mark.asyncio
async def test_admin_allowed_everywhere(policy, admin_user):
    for resource in ("users", "roles", "permissions", "audit-logs"):
        for action in ("create", "read", "update", "delete"):
            assert await policy.decide(admin_user.id, resource, action)


@pytest.mark.asyncio
async def test_viewer_read_only(policy, viewer_user):
    assert await policy.decide(viewer_user.id, "users", "read")
    assert await policy.decide(viewer_user.id, "audit-logs", "read")
    assert not await policy.decide(viewer_user.id, "users", "create")
    assert not await policy.decide(viewer_user.id, "roles", "delete")


@pytest.mark.asyncio
async def test_manager_grants(policy, manager_user):
    assert await policy.decide(manager_user.id, "users", "update")
    assert not await policy.decide(manager_user.id, "users", "delete")
    assert not await policy.decide(manager_user.id, "roles", "create")


@pytest.mark.asyncio
async def test_unknown_resource_denied(policy, admin_user):
    """Pure allow-list: nothing grants an undefined resource."""
    assert not await policy.decide(admin_user.id, "reports", "read")


# ==================== Manage Wildcard ====================


@pytest.mark.asyncio
async def test_manage_grants_every_action_on_resource(db_session, policy, admin_context):
    _, user = await _user_with_permissions(
        db_session, admin_context, "user-admins", ["users:manage"]
    )

    assert await policy.decide(user.id, "users", "delete")
    assert await policy.decide(user.id, "users", "export")
    assert not await policy.decide(user.id, "roles", "read")


@pytest.mark.asyncio
async def test_manage_not_expanded_for_bulk_checks(db_session, policy, admin_context):
    _, user = await _user_with_permissions(
        db_session, admin_context, "user-admins", ["users:manage"]
    )

    assert not await policy.has_any(user.id, ["users:delete", "users:read"])
    assert not await policy.has_all(user.id, ["users:delete"])
    assert await policy.has_any(user.id, ["users:manage"])
    assert await policy.list_effective_permissions(user.id) == {"users:manage"}


# ==================== Bulk Checks ====================


@pytest.mark.asyncio
async def test_has_any_and_has_all(policy, manager_user):
    assert await policy.has_any(manager_user.id, ["roles:delete", "roles:read"])
    assert not await policy.has_any(manager_user.id, ["roles:delete"])
    assert await policy.has_all(manager_user.id, ["users:create", "users:read"])
    assert not await policy.has_all(manager_user.id, ["users:create", "users:delete"])


@pytest.mark.asyncio
async def test_effective_permissions_exact_names(policy, viewer_user):
    assert await policy.list_effective_permissions(viewer_user.id) == {
        "users:read",
        "roles:read",
        "permissions:read",
        "audit-logs:read",
    }


# ==================== Denied Subjects ====================


@pytest.mark.asyncio
async def test_inactive_user_denied(policy, inactive_user):
    assert not await policy.decide(inactive_user.id, "users", "read")
    assert not await policy.has_any(inactive_user.id, ["users:read"])
    assert await policy.list_effective_permissions(inactive_user.id) == set()


@pytest.mark.asyncio
async def test_missing_user_denied(policy, roles):
    assert not await policy.decide("no-such-user", "users", "read")
    assert await policy.list_effective_permissions("no-such-user") == set()


@pytest.mark.asyncio
async def test_orphaned_role_reference_denied(db_session, policy, roles):
    user = await UserRepository(db_session).add(
        User(
            email="orphan@example.com",
            password_hash="x",
            first_name="No",
            last_name="Role",
            role_id="missing-role",
        )
    )
    await db_session.commit()

    assert not await policy.decide(user.id, "users", "read")


# ==================== Freshness ====================


@pytest.mark.asyncio
async def test_role_change_applies_on_next_check(db_session, policy, admin_context):
    role, user = await _user_with_permissions(
        db_session, admin_context, "editors", ["users:update"]
    )
    assert await policy.decide(user.id, "users", "update")

    await RoleService(db_session).update(
        role.id, RoleUpdateRequest(permission_ids=[]), admin_context
    )

    assert not await policy.decide(user.id, "users", "update")


@pytest.mark.asyncio
async def test_deactivation_applies_on_next_check(db_session, policy, viewer_user):
    assert await policy.decide(viewer_user.id, "users", "read")

    viewer_user.is_active = False
    await db_session.commit()

    assert not await policy.decide(viewer_user.id, "users", "read")


# ==================== Authorizer ====================


@pytest.mark.asyncio
async def test_authorizer_allows_silently(db_session, policy, audit, viewer_user):
    authorizer = Authorizer(db_session, policy, audit)

    await authorizer.require(context_for(viewer_user), "users", "read")

    page = await audit.list(AuditFilter(action=AuditAction.PERMISSION_DENIED))
    assert page.total == 0


@pytest.mark.asyncio
async def test_authorizer_denial_is_audited(db_session, policy, audit, viewer_user):
    authorizer = Authorizer(db_session, policy, audit)

    with pytest.raises(ForbiddenError) as exc_info:
        await authorizer.require(
            context_for(viewer_user),
            "users",
            "delete",
            request_metadata={"request_path": "/api/v1/users/x", "request_method": "DELETE"},
        )

    assert "users:delete" in exc_info.value.message

    page = await audit.list(AuditFilter(action=AuditAction.PERMISSION_DENIED))
    assert page.total == 1
    entry = page.entries[0]
    assert entry.actor_id == viewer_user.id
    assert entry.resource == "users"
    assert entry.event_metadata["required_permission"] == "users:delete"
    assert entry.event_metadata["request_method"] == "DELETE"


@pytest.mark.asyncio
async def test_require_any_denial_lists_all_names(db_session, policy, audit, viewer_user):
    authorizer = Authorizer(db_session, policy, audit)

    with pytest.raises(ForbiddenError):
        await authorizer.require_any(
            context_for(viewer_user), ["users:create", "users:delete"]
        )

    page = await audit.list(AuditFilter(action=AuditAction.PERMISSION_DENIED))
    entry = page.entries[0]
    assert entry.resource == "multiple"
    assert entry.event_metadata["required_permissions"] == ["users:create", "users:delete"]
