"""
Admin User Management endpoints.
"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.user import User, UserRole
from app.modules.auth.dependencies import require_admin
from app.schemas.auth import UserResponse
from app.schemas.common import success_response, paginated
from app.schemas.user import (
    AdminUserCreate, AdminUserUpdate, AdminUserDetail, BulkUserImport, UserStatusUpdate
)
from app.services.user_service import UserService

router = APIRouter()


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    """List users with pagination and filtering"""
    users, total = await UserService(db).list_users(page, limit, role, is_active, search)
    return success_response(paginated(
        [UserResponse.model_validate(u).model_dump() for u in users], total, page, limit
    ))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    data: AdminUserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    user = await UserService(db, request).create_user(data, current_admin)
    return success_response(UserResponse.model_validate(user).model_dump(), "User created successfully")


@router.post("/bulk-import")
async def bulk_import_users(
    data: BulkUserImport,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    """Create up to 100 users; duplicates are reported per row"""
    report = await UserService(db, request).bulk_import(data.users, current_admin)
    return success_response(report, f"Imported {report['summary']['successful']} users")


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    detail = await UserService(db).get_user_detail(user_id)
    user = detail.pop("user")
    return success_response(AdminUserDetail(
        **UserResponse.model_validate(user).model_dump(), **detail
    ).model_dump())


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    data: AdminUserUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    user = await UserService(db, request).update_user(user_id, data, current_admin)
    return success_response(UserResponse.model_validate(user).model_dump(), "User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    """Delete a user, or deactivate one that has exam or payment history"""
    result = await UserService(db, request).delete_user(user_id, current_admin)
    message = "User deleted successfully" if result["deleted"] else "User has activity history and was deactivated"
    return success_response(result, message)


@router.patch("/{user_id}/status")
async def set_user_status(
    user_id: str,
    data: UserStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    user = await UserService(db, request).set_status(user_id, data.is_active, current_admin)
    return success_response(
        UserResponse.model_validate(user).model_dump(),
        f"User {'activated' if user.is_active else 'deactivated'} successfully"
    )
