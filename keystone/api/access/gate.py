"""
KEYSTONE - Authorization Gate

Turns a policy decision into an outcome: allow silently, or record a
PERMISSION_DENIED audit entry and raise ForbiddenError.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.audit import AuditAction, AuditEngine, AuditEvent
from keystone.api.access.policy import AuthContext, PolicyEngine, format_permission
from keystone.api.errors import ForbiddenError


class Authorizer:
    """Gate used by every protected operation."""

    def __init__(self, db: AsyncSession, policy: PolicyEngine, audit: AuditEngine):
        self.db = db
        self.policy = policy
        self.audit = audit

    async def _deny(
        self,
        context: AuthContext,
        resource: str,
        metadata: Dict[str, Any],
        message: str,
    ) -> None:
        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.PERMISSION_DENIED,
                resource=resource,
                metadata=metadata,
            )
        )
        # The denial must persist even though the request fails
        await self.db.commit()
        raise ForbiddenError(message)

    async def require(
        self,
        context: AuthContext,
        resource: str,
        action: str,
        request_metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Raise ForbiddenError unless decide() allows (resource, action)."""
        if await self.policy.decide(context.user_id, resource, action):
            return

        required = format_permission(resource, action)
        await self._deny(
            context,
            resource,
            {"required_permission": required, **(request_metadata or {})},
            f"Permission denied: {required}",
        )

    async def require_any(
        self,
        context: AuthContext,
        permission_names: List[str],
        request_metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Raise ForbiddenError unless the caller holds one of the exact names."""
        if await self.policy.has_any(context.user_id, permission_names):
            return

        await self._deny(
            context,
            "multiple",
            {"required_permissions": list(permission_names), **(request_metadata or {})},
            "Permission denied",
        )
