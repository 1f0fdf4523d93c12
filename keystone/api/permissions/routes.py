"""
Permission Routes

API endpoints for the permission catalog.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.policy import AuthContext
from keystone.api.auth.schemas import MessageResponse
from keystone.api.db.session import get_db
from keystone.api.dependencies import require_permission
from keystone.api.permissions.schemas import PermissionCreateRequest, PermissionResponse
from keystone.api.permissions.service import PermissionService


router = APIRouter()


def get_permission_service(db: AsyncSession = Depends(get_db)) -> PermissionService:
    """Dependency to get permission service."""
    return PermissionService(db)


@router.get("", response_model=List[PermissionResponse], summary="List permissions")
async def list_permissions(
    resource: Optional[str] = Query(None, description="Only permissions on this resource"),
    context: AuthContext = Depends(require_permission("permissions", "read")),
    service: PermissionService = Depends(get_permission_service),
) -> List[PermissionResponse]:
    permissions = await service.list(resource)
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.post(
    "",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create permission",
)
async def create_permission(
    data: PermissionCreateRequest,
    context: AuthContext = Depends(require_permission("permissions", "create")),
    service: PermissionService = Depends(get_permission_service),
) -> PermissionResponse:
    return PermissionResponse.model_validate(await service.create(data, context))


@router.get("/{permission_id}", response_model=PermissionResponse, summary="Get permission")
async def get_permission(
    permission_id: str,
    context: AuthContext = Depends(require_permission("permissions", "read")),
    service: PermissionService = Depends(get_permission_service),
) -> PermissionResponse:
    return PermissionResponse.model_validate(await service.get(permission_id))


@router.delete(
    "/{permission_id}", response_model=MessageResponse, summary="Delete permission"
)
async def delete_permission(
    permission_id: str,
    context: AuthContext = Depends(require_permission("permissions", "delete")),
    service: PermissionService = Depends(get_permission_service),
) -> MessageResponse:
    """The permission is removed from every role that holds it."""
    await service.delete(permission_id, context)
    return MessageResponse(message="Permission deleted successfully")
