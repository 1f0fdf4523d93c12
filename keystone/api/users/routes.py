"""
User Routes

API endpoints for user management.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from keystone.api.access.policy import AuthContext
from keystone.api.auth.schemas import MessageResponse
from keystone.api.db.session import get_db
from keystone.api.dependencies import require_permission
from keystone.api.users.schemas import (
    UserCreateRequest,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)
from keystone.api.users.service import UserService


router = APIRouter()


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    """Dependency to get user service."""
    return UserService(db)


@router.get("", response_model=UserListResponse, summary="List users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    context: AuthContext = Depends(require_permission("users", "read")),
    service: UserService = Depends(get_user_service),
) -> UserListResponse:
    users, total = await service.list(page, limit)
    return UserListResponse(
        users=[UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit,
    )


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
)
async def create_user(
    data: UserCreateRequest,
    context: AuthContext = Depends(require_permission("users", "create")),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await service.create(data, context)
    return UserResponse.model_validate(user)


@router.get("/{user_id}", response_model=UserResponse, summary="Get user")
async def get_user(
    user_id: str,
    context: AuthContext = Depends(require_permission("users", "read")),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    return UserResponse.model_validate(await service.get(user_id))


@router.patch("/{user_id}", response_model=UserResponse, summary="Update user")
async def update_user(
    user_id: str,
    data: UserUpdateRequest,
    context: AuthContext = Depends(require_permission("users", "update")),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    """Partial update; deactivating a user blocks their next permission check."""
    user = await service.update(user_id, data, context)
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", response_model=MessageResponse, summary="Delete user")
async def delete_user(
    user_id: str,
    context: AuthContext = Depends(require_permission("users", "delete")),
    service: UserService = Depends(get_user_service),
) -> MessageResponse:
    await service.delete(user_id, context)
    return MessageResponse(message="User deleted successfully")
