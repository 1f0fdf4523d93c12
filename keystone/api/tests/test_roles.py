"""
Role and Permission Service Tests

Catalog and role management rules:
1. Unique role names and resource:action pairs
2. System roles are immutable
3. Roles in use cannot be deleted
4. Deleting a permission removes it from every role
"""

import pytest

from keystone.api.access.audit import AuditAction, AuditFilter
from keystone.api.access.policy import PermissionAction
from keystone.api.db.repositories import PermissionRepository, RoleRepository
from keystone.api.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from keystone.api.permissions.schemas import PermissionCreateRequest
from keystone.api.permissions.service import PermissionService
from keystone.api.roles.schemas import RoleCreateRequest, RoleUpdateRequest
from keystone.api.roles.service import RoleService
from keystone.api.users.schemas import UserUpdateRequest
from keystone.api.users.service import UserService


async def _permission_ids(db_session, *names):
    repo = PermissionRepository(db_session)
    return [(await repo.get_by_name(name)).id for name in names]


# ==================== Roles ====================


class TestRoleCreate:
    """Tests for role creation."""

    @pytest.mark.asyncio
    async def test_create_role(self, db_session, audit, roles, admin_context):
        """Should create a non-system role with the given permissions."""
        ids = await _permission_ids(db_session, "users:read", "roles:read")

        role = await RoleService(db_session).create(
            RoleCreateRequest(name="auditor", description="Reads", permission_ids=ids),
            admin_context,
        )

        assert not role.is_system
        assert role.permission_names == {"users:read", "roles:read"}

        [entry] = (await audit.list(AuditFilter(resource="roles"))).entries
        assert entry.action == "CREATE"
        assert entry.event_metadata == {"role_name": "auditor", "permission_count": 2}

    @pytest.mark.asyncio
    async def test_duplicate_permission_ids_collapse(self, db_session, roles, admin_context):
        """Should treat the permission list as a set."""
        [pid] = await _permission_ids(db_session, "users:read")

        role = await RoleService(db_session).create(
            RoleCreateRequest(name="dupes", permission_ids=[pid, pid]), admin_context
        )

        assert role.permission_ids == [pid]

    @pytest.mark.asyncio
    async def test_duplicate_name(self, db_session, roles, admin_context):
        with pytest.raises(ConflictError):
            await RoleService(db_session).create(
                RoleCreateRequest(name="viewer"), admin_context
            )

    @pytest.mark.asyncio
    async def test_unknown_permission_id(self, db_session, roles, admin_context):
        with pytest.raises(BadRequestError):
            await RoleService(db_session).create(
                RoleCreateRequest(name="broken", permission_ids=["missing"]), admin_context
            )


class TestRoleUpdate:
    """Tests for role updates."""

    @pytest.mark.asyncio
    async def test_update_replaces_permissions(self, db_session, audit, roles, admin_context):
        service = RoleService(db_session)
        role = await service.create(
            RoleCreateRequest(
                name="editors",
                permission_ids=await _permission_ids(db_session, "users:read"),
            ),
            admin_context,
        )
        new_ids = await _permission_ids(db_session, "users:update", "users:create")

        updated = await service.update(
            role.id,
            RoleUpdateRequest(name="writers", permission_ids=new_ids),
            admin_context,
        )

        assert updated.name == "writers"
        assert updated.permission_names == {"users:update", "users:create"}

        [entry] = (await audit.list(AuditFilter(action=AuditAction.UPDATE))).entries
        assert entry.event_metadata["previous_values"]["name"] == "editors"
        assert entry.event_metadata["changes"]["name"] == "writers"

    @pytest.mark.asyncio
    async def test_system_role_immutable(self, db_session, roles, admin_context):
        with pytest.raises(ForbiddenError):
            await RoleService(db_session).update(
                roles["admin"].id, RoleUpdateRequest(description="changed"), admin_context
            )

    @pytest.mark.asyncio
    async def test_rename_conflict(self, db_session, roles, admin_context):
        with pytest.raises(ConflictError):
            await RoleService(db_session).update(
                roles["viewer"].id, RoleUpdateRequest(name="manager"), admin_context
            )

    @pytest.mark.asyncio
    async def test_missing_role(self, db_session, roles, admin_context):
        with pytest.raises(NotFoundError):
            await RoleService(db_session).update(
                "missing", RoleUpdateRequest(name="x"), admin_context
            )


class TestRoleDelete:
    """Tests for role deletion."""

    @pytest.mark.asyncio
    async def test_delete_unused_role(self, db_session, audit, roles, admin_context):
        service = RoleService(db_session)
        role = await service.create(RoleCreateRequest(name="temporary"), admin_context)
        role_id = role.id

        await service.delete(role_id, admin_context)

        with pytest.raises(NotFoundError):
            await service.get(role_id)
        trail = await audit.trail("roles", role_id)
        assert [e.action for e in trail] == ["CREATE", "DELETE"]
        assert trail[-1].event_metadata == {"deleted_role_name": "temporary"}

    @pytest.mark.asyncio
    async def test_system_role_not_deletable(self, db_session, roles, admin_context):
        with pytest.raises(ForbiddenError):
            await RoleService(db_session).delete(roles["admin"].id, admin_context)

    @pytest.mark.asyncio
    async def test_role_in_use_not_deletable(self, db_session, roles, admin_context, viewer_user):
        """Deletion is refused while assigned, and allowed once users are reassigned."""
        service = RoleService(db_session)
        role_id = roles["viewer"].id

        with pytest.raises(BadRequestError) as exc_info:
            await service.delete(role_id, admin_context)
        assert "1 user(s)" in exc_info.value.message

        await UserService(db_session).update(
            viewer_user.id, UserUpdateRequest(role_id=roles["manager"].id), admin_context
        )
        await service.delete(role_id, admin_context)

        assert await RoleRepository(db_session).get(role_id) is None


# ==================== Permissions ====================


class TestPermissions:
    """Tests for the permission catalog."""

    @pytest.mark.asyncio
    async def test_create_permission(self, db_session, audit, roles, admin_context):
        """Should default the name to resource:action."""
        permission = await PermissionService(db_session).create(
            PermissionCreateRequest(
                resource="reports", action=PermissionAction.READ, description="Read reports"
            ),
            admin_context,
        )

        assert permission.name == "reports:read"
        [entry] = (await audit.list(AuditFilter(resource="permissions"))).entries
        assert entry.event_metadata["permission_key"] == "reports:read"

    @pytest.mark.asyncio
    async def test_duplicate_pair(self, db_session, roles, admin_context):
        with pytest.raises(ConflictError):
            await PermissionService(db_session).create(
                PermissionCreateRequest(
                    resource="users", action=PermissionAction.READ, description="again"
                ),
                admin_context,
            )

    @pytest.mark.asyncio
    async def test_duplicate_name(self, db_session, roles, admin_context):
        with pytest.raises(ConflictError):
            await PermissionService(db_session).create(
                PermissionCreateRequest(
                    name="users:read",
                    resource="reports",
                    action=PermissionAction.READ,
                    description="clash",
                ),
                admin_context,
            )

    @pytest.mark.asyncio
    async def test_non_canonical_name_rejected(self, db_session, roles, admin_context):
        with pytest.raises(BadRequestError):
            await PermissionService(db_session).create(
                PermissionCreateRequest(
                    name="view-reports",
                    resource="reports",
                    action=PermissionAction.READ,
                    description="bad name",
                ),
                admin_context,
            )

    @pytest.mark.asyncio
    async def test_list_by_resource(self, db_session, roles):
        permissions = await PermissionService(db_session).list("roles")

        assert {p.action for p in permissions} == {a.value for a in PermissionAction}

    @pytest.mark.asyncio
    async def test_delete_removes_from_roles(self, db_session, audit, roles, admin_context, policy, viewer_user):
        """Should drop the permission from every role that held it."""
        permission = await PermissionRepository(db_session).get_by_name("users:read")
        permission_id = permission.id

        await PermissionService(db_session).delete(permission_id, admin_context)

        assert not await policy.decide(viewer_user.id, "users", "read")
        [entry] = (await audit.list(AuditFilter(resource="permissions"))).entries
        assert set(entry.event_metadata["affected_roles"]) == {"admin", "manager", "viewer"}
