"""
User Schemas

Pydantic models for user management requests and responses.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


def _check_password_strength(value: str) -> str:
    if not any(c.islower() for c in value) \
            or not any(c.isupper() for c in value) \
            or not any(c.isdigit() for c in value):
        raise ValueError(
            "Password must contain at least one uppercase letter, "
            "one lowercase letter, and one number"
        )
    return value


class UserCreateRequest(BaseModel):
    """Create user request."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    role_id: str = Field(..., min_length=1)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class UserUpdateRequest(BaseModel):
    """Partial user update. Omitted fields are left unchanged."""

    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    role_id: Optional[str] = None
    is_active: Optional[bool] = None


class UserResponse(BaseModel):
    """User data response. Never includes the password hash."""

    id: str
    email: str
    first_name: str
    last_name: str
    role_id: str
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    """Paginated user list."""

    users: List[UserResponse]
    total: int
    page: int
    limit: int
    total_pages: int
