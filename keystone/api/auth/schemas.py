"""
Authentication Schemas

Pydantic models for auth request/response validation.
"""

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from keystone.api.users.schemas import UserResponse, _check_password_strength


class LoginRequest(BaseModel):
    """User login request."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class AuthResponse(TokenResponse):
    """Full auth response with tokens and user."""

    user: UserResponse


class RefreshTokenRequest(BaseModel):
    """Token refresh request."""

    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    """Logout request. Without a token and logout_all only the audit entry is written."""

    refresh_token: Optional[str] = None
    logout_all: bool = False


class PasswordChangeRequest(BaseModel):
    """Password change request."""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class MeResponse(UserResponse):
    """Current user with the effective permission set."""

    permissions: List[str]


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str
    success: bool = True
