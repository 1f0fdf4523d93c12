"""
Permission Schemas

Pydantic models for the permission catalog.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from keystone.api.access.policy import PermissionAction


class PermissionCreateRequest(BaseModel):
    """Create permission request. name defaults to "<resource>:<action>"."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    resource: str = Field(..., min_length=1, max_length=50)
    action: PermissionAction
    description: str = Field(..., min_length=1, max_length=255)


class PermissionResponse(BaseModel):
    """Permission atom."""

    id: str
    name: str
    resource: str
    action: str
    description: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
