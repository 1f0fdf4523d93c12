"""
Authentication Routes

API endpoints for login, token rotation, logout and password change.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.policy import AuthContext, PolicyEngine
from keystone.api.auth.schemas import (
    AuthResponse,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    MessageResponse,
    PasswordChangeRequest,
    RefreshTokenRequest,
    TokenResponse,
)
from keystone.api.auth.service import AuthService
from keystone.api.db.session import get_db
from keystone.api.dependencies import (
    get_auth_context,
    get_client_ip,
    get_policy_engine,
)
from keystone.api.errors import NotFoundError
from keystone.api.users.schemas import UserResponse


router = APIRouter()


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login and get tokens",
)
async def login(
    data: LoginRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """
    Authenticate with email and password.

    Returns access token, refresh token, and user data.
    """
    user, pair = await auth_service.login(
        data.email,
        data.password,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent", "unknown"),
    )

    return AuthResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        user=UserResponse.model_validate(user),
    )


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Rotate refresh token",
)
async def refresh(
    data: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Exchange a refresh token for a new pair.

    The presented refresh token is revoked and cannot be used again.
    """
    pair = await auth_service.refresh(data.refresh_token)

    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
)
async def logout(
    data: LogoutRequest,
    context: AuthContext = Depends(get_auth_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Revoke the given refresh token, or every session with logout_all."""
    await auth_service.logout(
        context,
        refresh_token=data.refresh_token,
        logout_all=data.logout_all,
    )
    return MessageResponse(message="Successfully logged out")


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Current user",
)
async def me(
    context: AuthContext = Depends(get_auth_context),
    auth_service: AuthService = Depends(get_auth_service),
    policy: PolicyEngine = Depends(get_policy_engine),
) -> MeResponse:
    """Current user with the exact permission names of their role."""
    user = await auth_service.users.get(context.user_id)
    if user is None:
        raise NotFoundError("User not found")

    permissions = await policy.list_effective_permissions(user.id)
    return MeResponse(
        **UserResponse.model_validate(user).model_dump(),
        permissions=sorted(permissions),
    )


@router.post(
    "/change-password",
    response_model=MessageResponse,
    summary="Change password",
)
async def change_password(
    data: PasswordChangeRequest,
    context: AuthContext = Depends(get_auth_context),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the caller's password. All sessions are revoked."""
    await auth_service.change_password(
        context, data.current_password, data.new_password
    )
    return MessageResponse(message="Password changed successfully")
