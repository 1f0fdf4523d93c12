"""
User Service

Business logic for user management. Every mutation is recorded in the
audit log in the same unit of work.
"""

from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.audit import AuditAction, AuditEngine, AuditEvent
from keystone.api.access.policy import AuthContext
from keystone.api.auth.passwords import hash_password
from keystone.api.auth.sessions import SessionManager
from keystone.api.db.models import User
from keystone.api.db.repositories import (
    AuditLogRepository,
    RoleRepository,
    UserRepository,
    normalize_email,
)
from keystone.api.errors import BadRequestError, ConflictError, NotFoundError
from keystone.api.users.schemas import UserCreateRequest, UserUpdateRequest


class UserService:
    """Service for user operations."""

    def __init__(
        self,
        db: AsyncSession,
        sessions: Optional[SessionManager] = None,
        audit: Optional[AuditEngine] = None,
    ):
        self.db = db
        self.users = UserRepository(db)
        self.roles = RoleRepository(db)
        self.sessions = sessions or SessionManager(db)
        self.audit = audit or AuditEngine(AuditLogRepository(db))

    async def create(self, data: UserCreateRequest, context: AuthContext) -> User:
        """
        Create a user assigned to an existing role.

        Raises:
            ConflictError: email already registered
            NotFoundError: role does not exist
        """
        if await self.users.exists_by_email(data.email):
            raise ConflictError("Email already registered")

        role = await self.roles.get(data.role_id)
        if role is None:
            raise NotFoundError("Role not found")

        user = await self.users.add(
            User(
                email=data.email,
                password_hash=hash_password(data.password),
                first_name=data.first_name,
                last_name=data.last_name,
                role_id=role.id,
                is_active=True,
            )
        )

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.CREATE,
                resource="users",
                resource_id=user.id,
                metadata={
                    "created_user_email": user.email,
                    "assigned_role": role.name,
                },
            )
        )
        await self.db.commit()
        return user

    async def get(self, user_id: str) -> User:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list(self, page: int = 1, limit: int = 20) -> Tuple[List[User], int]:
        if page < 1 or limit < 1:
            raise BadRequestError("page and limit must be >= 1")
        return await self.users.list(page, limit)

    async def update(
        self, user_id: str, data: UserUpdateRequest, context: AuthContext
    ) -> User:
        """
        Partially update a user.

        Raises:
            NotFoundError: user or new role does not exist
            ConflictError: new email already registered
        """
        user = await self.get(user_id)

        if data.email is not None and normalize_email(data.email) != user.email:
            if await self.users.exists_by_email(data.email):
                raise ConflictError("Email already registered")

        if data.role_id is not None and data.role_id != user.role_id:
            if await self.roles.get(data.role_id) is None:
                raise NotFoundError("Role not found")

        previous = {
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "role_id": user.role_id,
            "is_active": user.is_active,
        }
        changes = data.model_dump(exclude_unset=True, exclude_none=True)

        for field_name, value in changes.items():
            if field_name == "email":
                value = normalize_email(value)
            setattr(user, field_name, value)

        await self.db.flush()

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.UPDATE,
                resource="users",
                resource_id=user.id,
                metadata={"changes": changes, "previous_values": previous},
            )
        )
        await self.db.commit()
        return user

    async def delete(self, user_id: str, context: AuthContext) -> None:
        """
        Delete a user and revoke all of their sessions.

        Raises:
            BadRequestError: caller tries to delete themself
            NotFoundError: user does not exist
        """
        if user_id == context.user_id:
            raise BadRequestError("Cannot delete your own account")

        user = await self.get(user_id)
        email, full_name = user.email, user.full_name

        revoked = await self.sessions.revoke_all(user_id)
        await self.users.delete(user)

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.DELETE,
                resource="users",
                resource_id=user_id,
                metadata={
                    "deleted_user_email": email,
                    "deleted_user_name": full_name,
                    "sessions_revoked": revoked,
                },
            )
        )
        await self.db.commit()
