"""
Exam category endpoints (public catalogue)
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.core.permissions import is_admin
from app.models.user import User
from app.modules.auth.dependencies import get_optional_user
from app.schemas.category import CategoryResponse
from app.schemas.common import success_response
from app.services.category_service import CategoryService

router = APIRouter()


@router.get("")
async def list_categories(
    include_inactive: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    """Active categories; admins may include inactive ones"""
    include_inactive = include_inactive and current_user is not None and is_admin(current_user.role)
    categories = await CategoryService(db).list_categories(include_inactive)
    return success_response([CategoryResponse.model_validate(c).model_dump() for c in categories])


@router.get("/{category_id}")
async def get_category(category_id: str, db: AsyncSession = Depends(get_db)):
    category = await CategoryService(db).get_category(category_id)
    return success_response(CategoryResponse.model_validate(category).model_dump())
