"""
Permission Service

Business logic for the permission catalog.
"""

from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.audit import AuditAction, AuditEngine, AuditEvent
from keystone.api.access.policy import AuthContext, PermissionAction, format_permission
from keystone.api.db.models import Permission
from keystone.api.db.repositories import AuditLogRepository, PermissionRepository
from keystone.api.errors import BadRequestError, ConflictError, NotFoundError
from keystone.api.permissions.schemas import PermissionCreateRequest


class PermissionService:
    """Service for permission catalog operations."""

    def __init__(self, db: AsyncSession, audit: Optional[AuditEngine] = None):
        self.db = db
        self.permissions = PermissionRepository(db)
        self.audit = audit or AuditEngine(AuditLogRepository(db))

    async def create(
        self, data: PermissionCreateRequest, context: AuthContext
    ) -> Permission:
        """
        Create a permission atom.

        Raises:
            ConflictError: name already used, or (resource, action) already defined
            BadRequestError: name is not "<resource>:<action>"
        """
        action = PermissionAction(data.action).value
        canonical = format_permission(data.resource, action)
        name = data.name or canonical

        if await self.permissions.get_by_name(name):
            raise ConflictError("Permission name already exists")

        if await self.permissions.get_by_resource_action(data.resource, action):
            raise ConflictError(f"Permission for {canonical} already exists")

        if name != canonical:
            raise BadRequestError(f"Permission name must be '{canonical}'")

        permission = await self.permissions.add(
            Permission(
                name=name,
                resource=data.resource,
                action=action,
                description=data.description,
            )
        )

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.CREATE,
                resource="permissions",
                resource_id=permission.id,
                metadata={
                    "permission_name": permission.name,
                    "permission_key": canonical,
                },
            )
        )
        await self.db.commit()
        return permission

    async def get(self, permission_id: str) -> Permission:
        permission = await self.permissions.get(permission_id)
        if permission is None:
            raise NotFoundError("Permission not found")
        return permission

    async def list(self, resource: Optional[str] = None) -> List[Permission]:
        return await self.permissions.list(resource)

    async def delete(self, permission_id: str, context: AuthContext) -> None:
        """Delete a permission; it disappears from every role holding it."""
        permission = await self.get(permission_id)
        affected_roles = [role.name for role in permission.roles]

        # Detach through the relationship so loaded roles drop it too
        permission.roles.clear()
        await self.permissions.delete(permission)

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.DELETE,
                resource="permissions",
                resource_id=permission_id,
                metadata={
                    "deleted_permission_name": permission.name,
                    "deleted_permission_key": format_permission(
                        permission.resource, permission.action
                    ),
                    "affected_roles": affected_roles,
                },
            )
        )
        await self.db.commit()
