"""
Authentication Service

Login, token refresh, logout and password change, each paired with its
audit entry.
"""

from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.audit import (
    SYSTEM_ACTOR_ID,
    AuditAction,
    AuditEngine,
    AuditEvent,
)
from keystone.api.access.policy import AuthContext
from keystone.api.auth.passwords import hash_password, verify_password
from keystone.api.auth.sessions import SessionManager, TokenPair
from keystone.api.db.models import User, utcnow
from keystone.api.db.repositories import AuditLogRepository, UserRepository
from keystone.api.errors import BadRequestError, NotFoundError, UnauthorizedError


class AuthService:
    """Authentication use cases."""

    def __init__(
        self,
        db: AsyncSession,
        sessions: Optional[SessionManager] = None,
        audit: Optional[AuditEngine] = None,
    ):
        self.db = db
        self.users = UserRepository(db)
        self.sessions = sessions or SessionManager(db)
        self.audit = audit or AuditEngine(AuditLogRepository(db))

    async def _log_failed_attempt(
        self,
        email: str,
        ip_address: str,
        user_agent: str,
        reason: str,
        user: Optional[User] = None,
    ) -> None:
        await self.audit.append(
            AuditEvent(
                actor_id=user.id if user else SYSTEM_ACTOR_ID,
                actor_email=email,
                action=AuditAction.LOGIN_FAILED,
                resource="auth",
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"reason": reason},
            )
        )
        # Persist the failure even though the caller gets an error
        await self.db.commit()

    async def login(
        self,
        email: str,
        password: str,
        ip_address: str = "unknown",
        user_agent: str = "unknown",
    ) -> Tuple[User, TokenPair]:
        """
        Authenticate user with email/password.

        Returns:
            The user and a fresh token pair

        Raises:
            UnauthorizedError: unknown email, inactive account or bad password
        """
        user = await self.users.get_by_email(email)

        if user is None:
            await self._log_failed_attempt(email, ip_address, user_agent, "user_not_found")
            raise UnauthorizedError("Invalid credentials")

        if not user.is_active:
            await self._log_failed_attempt(
                email, ip_address, user_agent, "account_deactivated", user
            )
            raise UnauthorizedError("Account is deactivated")

        if not verify_password(password, user.password_hash):
            await self._log_failed_attempt(
                email, ip_address, user_agent, "invalid_password", user
            )
            raise UnauthorizedError("Invalid credentials")

        pair = await self.sessions.issue(user.id)
        user.last_login_at = utcnow()

        await self.audit.append(
            AuditEvent(
                actor_id=user.id,
                actor_email=user.email,
                action=AuditAction.LOGIN,
                resource="auth",
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"method": "password"},
            )
        )
        await self.db.commit()

        return user, pair

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token into a new pair."""
        return await self.sessions.rotate(refresh_token)

    async def logout(
        self,
        context: AuthContext,
        refresh_token: Optional[str] = None,
        logout_all: bool = False,
    ) -> None:
        """Revoke one session or all of the caller's sessions."""
        if logout_all:
            await self.sessions.revoke_all(context.user_id)
        elif refresh_token:
            await self.sessions.revoke(refresh_token)

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.LOGOUT,
                resource="auth",
                metadata={"logout_all": logout_all},
            )
        )
        await self.db.commit()

    async def change_password(
        self,
        context: AuthContext,
        current_password: str,
        new_password: str,
    ) -> None:
        """
        Change the caller's password and end all their sessions.

        Raises:
            NotFoundError: caller no longer exists
            BadRequestError: current password is wrong
        """
        user = await self.users.get(context.user_id)
        if user is None:
            raise NotFoundError("User not found")

        if not verify_password(current_password, user.password_hash):
            raise BadRequestError("Current password is incorrect")

        user.password_hash = hash_password(new_password)
        revoked = await self.sessions.revoke_all(user.id)

        await self.audit.append(
            AuditEvent.from_context(
                context,
                action=AuditAction.PASSWORD_CHANGE,
                resource="users",
                resource_id=user.id,
                metadata={"sessions_revoked": revoked},
            )
        )
        await self.db.commit()
