"""
Role Service

Business logic for role management. System roles are immutable and a
role cannot be removed while users are assigned to it.
"""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.audit import AuditAction, AuditEngine, AuditEvent
from keystone.api.access.policy import AuthContext
from keystone.api.db.models import Permission, Role
from keystone.api.db.repositories import (
    AuditLogRepository,
    PermissionRepository,
    RoleRepository,
    UserRepository,
)
from keystone.api.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from keystone.api.roles.schemas import RoleCreateRequest, RoleUpdateRequest


class RoleService:
    """Service for role operations."""

    def __init__(self, db: AsyncSession, audit: Optional[AuditEngine] = None):
        self.db = db
        self.roles = RoleRepository(db)
        self.permissions = PermissionRepository(db)
        self.users = UserRepository(db)
        self.audit = audit or AuditEngine(AuditLogRepository(db))

    async def _resolve_permissions(self, permission_ids: List[str]) -> List[Permission]:
        """Load permissions for a de-duplicated id list; every id must exist."""
        unique_ids = list(dict.fromkeys(permission_ids))
        permissions = await self.permissions.get_many(unique_ids)
        if len(permissions) != len(unique_ids):
            raise BadRequestError("One or more permission IDs are invalid")
        return permissions

    async def create(self, data: RoleCreateRequest, context: AuthContext) -> Role:
        """
        Create a non-system role.

        Raises:
            ConflictError: name already exists
            BadRequestError: unknown permission id
        """
        if await self.roles.exists_by_name(data.name):
            raise ConflictError("Role name already exists")

        permissions = await self._resolve_permissions(data.permission_ids)

        role = Role(
            name=data.name,
            description=data.description,
            is_system=False,
            permissions=permissions,
        )
        await self.roles.add(role)

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.CREATE,
                resource="roles",
                resource_id=role.id,
                metadata={
                    "role_name": role.name,
                    "permission_count": len(permissions),
                },
            )
        )
        await self.db.commit()
        return role

    async def get(self, role_id: str) -> Role:
        role = await self.roles.get(role_id)
        if role is None:
            raise NotFoundError("Role not found")
        return role

    async def list(self) -> List[Role]:
        return await self.roles.list()

    async def update(
        self, role_id: str, data: RoleUpdateRequest, context: AuthContext
    ) -> Role:
        """
        Update name, description or permission set.

        Raises:
            NotFoundError: role does not exist
            ForbiddenError: role is a system role
            ConflictError: new name already taken
            BadRequestError: unknown permission id
        """
        role = await self.get(role_id)

        if role.is_system:
            raise ForbiddenError("Cannot modify system roles")

        if data.name is not None and data.name != role.name:
            if await self.roles.exists_by_name(data.name):
                raise ConflictError("Role name already exists")

        previous = {
            "name": role.name,
            "description": role.description,
            "permission_ids": role.permission_ids,
        }
        changes = data.model_dump(exclude_unset=True)

        if data.permission_ids is not None:
            role.permissions = await self._resolve_permissions(data.permission_ids)
            changes["permission_ids"] = role.permission_ids
        if data.name is not None:
            role.name = data.name
        if data.description is not None:
            role.description = data.description

        await self.db.flush()

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.UPDATE,
                resource="roles",
                resource_id=role.id,
                metadata={"changes": changes, "previous_values": previous},
            )
        )
        await self.db.commit()
        return role

    async def delete(self, role_id: str, context: AuthContext) -> None:
        """
        Delete a role.

        Raises:
            NotFoundError: role does not exist
            ForbiddenError: role is a system role
            BadRequestError: users are still assigned to the role
        """
        role = await self.get(role_id)

        if role.is_system:
            raise ForbiddenError("Cannot delete system roles")

        assigned = await self.users.count_by_role(role_id)
        if assigned > 0:
            raise BadRequestError(
                f"Cannot delete role. {assigned} user(s) are still assigned to this role."
            )

        role_name = role.name
        role.permissions.clear()
        await self.roles.delete(role)

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.DELETE,
                resource="roles",
                resource_id=role_id,
                metadata={"deleted_role_name": role_name},
            )
        )
        await self.db.commit()
