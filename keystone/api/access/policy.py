"""
KEYSTONE - Policy Engine

Resolves a user to an effective permission set through its single role
and decides authorization outcomes. Pure allow-list: anything not granted
is denied.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Set, Tuple

from keystone.api.db.repositories import RoleRepository, UserRepository


logger = logging.getLogger(__name__)


# ============================================================
# Permission Atoms
# ============================================================


class PermissionAction(str, Enum):
    """Actions a permission atom may grant."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


def format_permission(resource: str, action: str) -> str:
    """Permission names are always exactly "<resource>:<action>"."""
    return f"{resource}:{action}"


def parse_permission(name: str) -> Tuple[str, str]:
    """Split a permission name into (resource, action)."""
    resource, _, action = name.partition(":")
    return resource, action


def has_wildcard_or_exact(names: Set[str], resource: str, action: str) -> bool:
    """
    Single-check gate.

    Holding "<resource>:manage" grants every action on that resource,
    including actions with no permission row of their own.
    """
    if format_permission(resource, PermissionAction.MANAGE.value) in names:
        return True
    return format_permission(resource, action) in names


def has_exact_name_only(names: Set[str], name: str) -> bool:
    """Bulk/display check. "manage" is NOT expanded here."""
    return name in names


# ============================================================
# Authorization Context
# ============================================================


@dataclass
class AuthContext:
    """Authenticated caller plus the request facts recorded in audit entries."""

    user_id: str
    email: str
    role_id: Optional[str] = None
    ip_address: str = "unknown"
    user_agent: str = "unknown"


# ============================================================
# Policy Engine
# ============================================================


class PolicyEngine:
    """
    Decides whether a user may perform an action on a resource.

    Never raises for "no access"; only store faults propagate.
    """

    def __init__(self, users: UserRepository, roles: RoleRepository):
        self.users = users
        self.roles = roles

    async def _effective_names(self, user_id: str) -> Optional[Set[str]]:
        """Exact permission names for an active user, or None to deny."""
        user = await self.users.get(user_id)
        if user is None or not user.is_active:
            return None

        role = await self.roles.get(user.role_id)
        if role is None:
            logger.warning("User %s references missing role %s", user_id, user.role_id)
            return None

        return role.permission_names

    async def decide(self, user_id: str, resource: str, action: str) -> bool:
        """Gate a single (resource, action) request."""
        names = await self._effective_names(user_id)
        if names is None:
            return False
        return has_wildcard_or_exact(names, resource, action)

    async def has_any(self, user_id: str, permission_names: Iterable[str]) -> bool:
        """True if the user holds at least one of the exact names."""
        names = await self._effective_names(user_id)
        if names is None:
            return False
        return any(has_exact_name_only(names, name) for name in permission_names)

    async def has_all(self, user_id: str, permission_names: Iterable[str]) -> bool:
        """True if the user holds every one of the exact names."""
        names = await self._effective_names(user_id)
        if names is None:
            return False
        return all(has_exact_name_only(names, name) for name in permission_names)

    async def list_effective_permissions(self, user_id: str) -> Set[str]:
        """Exact names held by the user; manage is not expanded."""
        names = await self._effective_names(user_id)
        return set(names) if names else set()
