"""
Role Schemas

Pydantic models for role management.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from keystone.api.permissions.schemas import PermissionResponse


class RoleCreateRequest(BaseModel):
    """Create role request."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=255)
    permission_ids: List[str] = Field(default_factory=list)


class RoleUpdateRequest(BaseModel):
    """Partial role update."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)
    permission_ids: Optional[List[str]] = None


class RoleResponse(BaseModel):
    """Role with permission ids."""

    id: str
    name: str
    description: str
    permission_ids: List[str]
    is_system: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RoleDetailResponse(RoleResponse):
    """Role expanded with its permissions."""

    permissions: List[PermissionResponse]
