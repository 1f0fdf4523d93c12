"""
Role Routes

API endpoints for role management.
"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.policy import AuthContext
from keystone.api.auth.schemas import MessageResponse
from keystone.api.db.session import get_db
from keystone.api.dependencies import require_permission
from keystone.api.permissions.schemas import PermissionResponse
from keystone.api.roles.schemas import (
    RoleCreateRequest,
    RoleDetailResponse,
    RoleResponse,
    RoleUpdateRequest,
)
from keystone.api.roles.service import RoleService


router = APIRouter()


def get_role_service(db: AsyncSession = Depends(get_db)) -> RoleService:
    """Dependency to get role service."""
    return RoleService(db)


def _detail(role) -> RoleDetailResponse:
    return RoleDetailResponse(
        **RoleResponse.model_validate(role).model_dump(),
        permissions=[PermissionResponse.model_validate(p) for p in role.permissions],
    )


@router.get("", response_model=List[RoleResponse], summary="List roles")
async def list_roles(
    context: AuthContext = Depends(require_permission("roles", "read")),
    service: RoleService = Depends(get_role_service),
) -> List[RoleResponse]:
    return [RoleResponse.model_validate(r) for r in await service.list()]


@router.post(
    "",
    response_model=RoleDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create role",
)
async def create_role(
    data: RoleCreateRequest,
    context: AuthContext = Depends(require_permission("roles", "create")),
    service: RoleService = Depends(get_role_service),
) -> RoleDetailResponse:
    return _detail(await service.create(data, context))


@router.get("/{role_id}", response_model=RoleDetailResponse, summary="Get role")
async def get_role(
    role_id: str,
    context: AuthContext = Depends(require_permission("roles", "read")),
    service: RoleService = Depends(get_role_service),
) -> RoleDetailResponse:
    return _detail(await service.get(role_id))


@router.patch("/{role_id}", response_model=RoleDetailResponse, summary="Update role")
async def update_role(
    role_id: str,
    data: RoleUpdateRequest,
    context: AuthContext = Depends(require_permission("roles", "update")),
    service: RoleService = Depends(get_role_service),
) -> RoleDetailResponse:
    """System roles cannot be modified."""
    return _detail(await service.update(role_id, data, context))


@router.delete("/{role_id}", response_model=MessageResponse, summary="Delete role")
async def delete_role(
    role_id: str,
    context: AuthContext = Depends(require_permission("roles", "delete")),
    service: RoleService = Depends(get_role_service),
) -> MessageResponse:
    """Only non-system roles without assigned users can be deleted."""
    await service.delete(role_id, context)
    return MessageResponse(message="Role deleted successfully")
