"""
Repositories

Thin data-access wrappers over an injected AsyncSession.
Repositories flush but never commit; the calling service owns the
unit of work.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from keystone.api.db.models import AuditLog, Permission, RefreshToken, Role, User


def normalize_email(email: str) -> str:
    """Emails are unique case-insensitively; store them lower-cased."""
    return email.strip().lower()


class UserRepository:
    """Identity store access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def exists_by_email(self, email: str) -> bool:
        return await self.get_by_email(email) is not None

    async def list(self, page: int, limit: int) -> Tuple[List[User], int]:
        total = await self.db.scalar(select(func.count(User.id)))
        result = await self.db.execute(
            select(User)
            .order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def count_by_role(self, role_id: str) -> int:
        count = await self.db.scalar(
            select(func.count(User.id)).where(User.role_id == role_id)
        )
        return count or 0

    async def add(self, user: User) -> User:
        user.email = normalize_email(user.email)
        self.db.add(user)
        await self.db.flush()
        return user

    async def delete(self, user: User) -> None:
        await self.db.delete(user)
        await self.db.flush()


class RoleRepository:
    """Role catalog access. Roles are always loaded with their permissions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _select(self):
        return select(Role).options(selectinload(Role.permissions))

    async def get(self, role_id: str) -> Optional[Role]:
        result = await self.db.execute(self._select().where(Role.id == role_id))
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[Role]:
        result = await self.db.execute(self._select().where(Role.name == name))
        return result.scalar_one_or_none()

    async def exists_by_name(self, name: str) -> bool:
        count = await self.db.scalar(select(func.count(Role.id)).where(Role.name == name))
        return bool(count)

    async def list(self) -> List[Role]:
        result = await self.db.execute(self._select().order_by(Role.name))
        return list(result.scalars().all())

    async def add(self, role: Role) -> Role:
        self.db.add(role)
        await self.db.flush()
        return role

    async def delete(self, role: Role) -> None:
        await self.db.delete(role)
        await self.db.flush()


class PermissionRepository:
    """Permission catalog access."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, permission_id: str) -> Optional[Permission]:
        result = await self.db.execute(
            select(Permission)
            .options(selectinload(Permission.roles))
            .where(Permission.id == permission_id)
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[Permission]:
        result = await self.db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def get_by_resource_action(self, resource: str, action: str) -> Optional[Permission]:
        result = await self.db.execute(
            select(Permission).where(
                Permission.resource == resource,
                Permission.action == action,
            )
        )
        return result.scalar_one_or_none()

    async def get_many(self, permission_ids: Iterable[str]) -> List[Permission]:
        ids = list(permission_ids)
        if not ids:
            return []
        result = await self.db.execute(select(Permission).where(Permission.id.in_(ids)))
        return list(result.scalars().all())

    async def list(self, resource: Optional[str] = None) -> List[Permission]:
        query = select(Permission).order_by(Permission.resource, Permission.action)
        if resource:
            query = query.where(Permission.resource == resource)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def add(self, permission: Permission) -> Permission:
        self.db.add(permission)
        await self.db.flush()
        return permission

    async def delete(self, permission: Permission) -> None:
        # Loaded with .roles so the association rows go with it
        await self.db.delete(permission)
        await self.db.flush()


class RefreshTokenRepository:
    """
    Refresh session store.

    Every state change is a single conditional statement so concurrent
    callers never both observe the same token as claimable.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _valid(token: str, now: datetime):
        return and_(
            RefreshToken.token == token,
            RefreshToken.is_revoked.is_(False),
            RefreshToken.expires_at > now,
        )

    async def add(self, token: str, user_id: str, expires_at: datetime) -> RefreshToken:
        record = RefreshToken(token=token, user_id=user_id, expires_at=expires_at)
        self.db.add(record)
        await self.db.flush()
        return record

    async def get_by_token(self, token: str) -> Optional[RefreshToken]:
        result = await self.db.execute(select(RefreshToken).where(RefreshToken.token == token))
        return result.scalar_one_or_none()

    async def is_valid(self, token: str, now: datetime) -> bool:
        count = await self.db.scalar(
            select(func.count(RefreshToken.id)).where(self._valid(token, now))
        )
        return bool(count)

    async def claim(self, token: str, now: datetime) -> bool:
        """Revoke a currently valid token; True only for the caller that flipped it."""
        result = await self.db.execute(
            update(RefreshToken)
            .where(self._valid(token, now))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def revoke(self, token: str) -> int:
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.token == token, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def revoke_all(self, user_id: str) -> int:
        result = await self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_stale(self, now: datetime) -> int:
        result = await self.db.execute(
            delete(RefreshToken)
            .where(or_(RefreshToken.is_revoked.is_(True), RefreshToken.expires_at < now))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


AUDIT_GROUP_COLUMNS = {
    "action": AuditLog.action,
    "resource": AuditLog.resource,
    "actor": AuditLog.actor_id,
}


class AuditLogRepository:
    """Append and query access to the audit log. No update or delete paths."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _conditions(
        actor_id: Optional[str] = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        resource_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list:
        conditions = []
        if actor_id:
            conditions.append(AuditLog.actor_id == actor_id)
        if action:
            conditions.append(AuditLog.action == action)
        if resource:
            conditions.append(AuditLog.resource == resource)
        if resource_id:
            conditions.append(AuditLog.resource_id == resource_id)
        if start_date is not None:
            conditions.append(AuditLog.timestamp >= start_date)
        if end_date is not None:
            conditions.append(AuditLog.timestamp <= end_date)
        return conditions

    async def add(self, entry: AuditLog) -> AuditLog:
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def find(self, offset: int, limit: int, **filters) -> Tuple[List[AuditLog], int]:
        conditions = self._conditions(**filters)
        total = await self.db.scalar(
            select(func.count(AuditLog.id)).where(*conditions)
        )
        result = await self.db.execute(
            select(AuditLog)
            .where(*conditions)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def aggregate(
        self,
        group_by: str,
        start_date: datetime,
        end_date: datetime,
        limit: Optional[int] = None,
    ) -> Sequence[Tuple[str, int, datetime, datetime]]:
        column = AUDIT_GROUP_COLUMNS[group_by]
        count = func.count(AuditLog.id).label("count")
        query = (
            select(
                column.label("group"),
                count,
                func.min(AuditLog.timestamp).label("first_occurrence"),
                func.max(AuditLog.timestamp).label("last_occurrence"),
            )
            .where(*self._conditions(start_date=start_date, end_date=end_date))
            .group_by(column)
            .order_by(count.desc(), column)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return [tuple(row) for row in result.all()]

    async def trail(self, resource: str, resource_id: str) -> List[AuditLog]:
        result = await self.db.execute(
            select(AuditLog)
            .where(AuditLog.resource == resource, AuditLog.resource_id == resource_id)
            .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
        )
        return list(result.scalars().all())

    async def in_range(self, start_date: datetime, end_date: datetime) -> List[AuditLog]:
        result = await self.db.execute(
            select(AuditLog)
            .where(*self._conditions(start_date=start_date, end_date=end_date))
            .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
        )
        return list(result.scalars().all())
