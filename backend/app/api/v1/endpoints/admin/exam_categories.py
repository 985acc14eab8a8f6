"""
Admin Exam Category endpoints.
"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import require_permission
from app.schemas.category import CategoryCreate, CategoryUpdate, CategoryResponse
from app.schemas.common import success_response
from app.services.category_service import CategoryService

router = APIRouter()


@router.get("")
async def list_categories(
    include_inactive: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("category:read"))
):
    categories = await CategoryService(db).list_categories(include_inactive)
    return success_response([CategoryResponse.model_validate(c).model_dump() for c in categories])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("category:create"))
):
    category = await CategoryService(db, request).create_category(data, current_user)
    return success_response(CategoryResponse.model_validate(category).model_dump(), "Category created")


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("category:update"))
):
    category = await CategoryService(db, request).update_category(category_id, data, current_user)
    return success_response(CategoryResponse.model_validate(category).model_dump(), "Category updated")


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("category:delete"))
):
    await CategoryService(db, request).delete_category(category_id, current_user)
    return success_response(message="Category deleted")
