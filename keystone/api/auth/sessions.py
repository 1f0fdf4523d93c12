"""
Session / Token Manager

Issues, rotates and revokes refresh sessions.

    ACTIVE -> REVOKED   (logout, rotation, user deletion)
    ACTIVE -> EXPIRED   (time passes; no write until swept)

Access tokens are stateless (signature + expiry). Refresh tokens are
stateful: valid only while their row is unrevoked and unexpired.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.auth.jwt import (
    create_access_token,
    create_refresh_token,
    verify_token,
)
from keystone.api.config import settings
from keystone.api.db.models import RefreshToken, User, utcnow
from keystone.api.db.repositories import RefreshTokenRepository, UserRepository
from keystone.api.errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    """Access credential plus its persisted refresh session."""

    access_token: str
    refresh_token: str
    expires_in: int
    session: RefreshToken


class SessionManager:
    """
    Refresh session lifecycle.

    issue/revoke/revoke_all/sweep only flush; the caller commits them
    together with its own changes. rotate is a self-contained unit of work
    and commits.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
        access_ttl: Optional[timedelta] = None,
        refresh_ttl: Optional[timedelta] = None,
    ):
        self.db = db
        self.tokens = RefreshTokenRepository(db)
        self.users = UserRepository(db)
        self._clock = clock
        self.access_ttl = access_ttl or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.refresh_ttl = refresh_ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    async def _issue_for(self, user: User) -> TokenPair:
        expires_at = self._clock() + self.refresh_ttl
        access_minutes = int(self.access_ttl.total_seconds() // 60)

        access_token = create_access_token(
            user_id=user.id,
            email=user.email,
            role_id=user.role_id,
            expires_minutes=access_minutes,
        )
        refresh_token = create_refresh_token(user.id, expires_at)
        session = await self.tokens.add(refresh_token, user.id, expires_at)

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=access_minutes * 60,
            session=session,
        )

    async def issue(self, user_id: str) -> TokenPair:
        """Create an access credential and a persisted refresh session."""
        user = await self.users.get(user_id)
        if user is None or not user.is_active:
            raise UnauthorizedError("User not found or deactivated")
        return await self._issue_for(user)

    async def rotate(self, old_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair. Single use.

        The old token is claimed by one conditional UPDATE; of two concurrent
        callers only one sees a changed row, the other gets UnauthorizedError.

        Raises:
            UnauthorizedError: bad signature, expired, missing or revoked
                record, or owning user gone/inactive (token is revoked first)
        """
        payload = verify_token(old_token, "refresh")
        if not payload:
            raise UnauthorizedError("Invalid or expired refresh token")

        if not await self.tokens.claim(old_token, self._clock()):
            raise UnauthorizedError("Refresh token has been revoked")

        user = await self.users.get(payload["sub"])
        if user is None or not user.is_active:
            # Keep the revocation that claim() just made
            await self.db.commit()
            raise UnauthorizedError("User not found or deactivated")

        pair = await self._issue_for(user)
        await self.db.commit()
        logger.debug("Rotated refresh session for user %s", user.id)
        return pair

    async def revoke(self, token: str) -> None:
        """Revoke one token. Unknown or already revoked tokens are ignored."""
        await self.tokens.revoke(token)

    async def revoke_all(self, user_id: str) -> int:
        """Revoke every active session of a user; returns how many changed."""
        return await self.tokens.revoke_all(user_id)

    async def is_valid(self, token: str) -> bool:
        """True iff an unrevoked, unexpired record exists for exactly this token."""
        return await self.tokens.is_valid(token, self._clock())

    async def sweep(self) -> int:
        """Delete revoked and expired rows. Storage hygiene only."""
        purged = await self.tokens.delete_stale(self._clock())
        if purged:
            logger.info("Purged %d stale refresh sessions", purged)
        return purged
