"""
FastAPI Dependencies

Common dependencies for dependency injection.
"""

from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.audit import AuditEngine
from keystone.api.access.gate import Authorizer
from keystone.api.access.policy import AuthContext, PolicyEngine
from keystone.api.auth.jwt import verify_token
from keystone.api.db.repositories import (
    AuditLogRepository,
    RoleRepository,
    UserRepository,
)
from keystone.api.db.session import get_db
from keystone.api.errors import UnauthorizedError


security = HTTPBearer(auto_error=False)


def get_client_ip(request: Request) -> str:
    """Client address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def get_audit_engine(db: AsyncSession = Depends(get_db)) -> AuditEngine:
    return AuditEngine(AuditLogRepository(db))


def get_policy_engine(db: AsyncSession = Depends(get_db)) -> PolicyEngine:
    return PolicyEngine(UserRepository(db), RoleRepository(db))


def get_authorizer(
    db: AsyncSession = Depends(get_db),
    policy: PolicyEngine = Depends(get_policy_engine),
    audit: AuditEngine = Depends(get_audit_engine),
) -> Authorizer:
    return Authorizer(db, policy, audit)


async def get_auth_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    """
    Build the caller context from the bearer access token.

    Access tokens are stateless; deactivation takes effect at the next
    permission check, which resolves the user from the store.

    Raises:
        UnauthorizedError: If the token is missing, invalid or expired
    """
    if credentials is None:
        raise UnauthorizedError("Authentication required")

    payload = verify_token(credentials.credentials, "access")
    if not payload:
        raise UnauthorizedError("Invalid or expired token")

    return AuthContext(
        user_id=payload["sub"],
        email=payload.get("email", ""),
        role_id=payload.get("role_id"),
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent", "unknown"),
    )


def require_permission(resource: str, action: str) -> Callable:
    """
    Dependency factory gating a route on one (resource, action) check.

    Usage:
        @router.get("/", dependencies=[Depends(require_permission("users", "read"))])
    """

    async def checker(
        request: Request,
        context: AuthContext = Depends(get_auth_context),
        authorizer: Authorizer = Depends(get_authorizer),
    ) -> AuthContext:
        await authorizer.require(
            context,
            resource,
            action,
            request_metadata={
                "request_path": request.url.path,
                "request_method": request.method,
            },
        )
        return context

    return checker
