from typing import List, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.core.exceptions import BusinessRuleError, CategoryNotFoundError, ConflictError
from app.models.exam import Exam
from app.models.exam_category import ExamCategory
from app.models.question import Question
from app.models.user import User
from app.schemas.category import CategoryCreate, CategoryUpdate
from app.services.audit_service import AuditService


class CategoryService:
    """CRUD for exam categories"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.audit = AuditService(db, request)

    async def list_categories(self, include_inactive: bool = False) -> List[ExamCategory]:
        query = select(ExamCategory)
        if not include_inactive:
            query = query.where(ExamCategory.is_active.is_(True))
        result = await self.db.execute(query.order_by(ExamCategory.sort_order, ExamCategory.name))
        return list(result.scalars().all())

    async def get_category(self, category_id: str) -> ExamCategory:
        result = await self.db.execute(select(ExamCategory).where(ExamCategory.id == category_id))
        category = result.scalar_one_or_none()
        if not category:
            raise CategoryNotFoundError(category_id)
        return category

    async def _ensure_unique_name(self, name: str, exclude_id: Optional[str] = None) -> None:
        query = select(ExamCategory.id).where(func.lower(ExamCategory.name) == name.lower())
        if exclude_id:
            query = query.where(ExamCategory.id != exclude_id)
        if (await self.db.execute(query)).first():
            raise ConflictError("Category with this name already exists", name=name)

    async def create_category(self, data: CategoryCreate, actor: User) -> ExamCategory:
        await self._ensure_unique_name(data.name)

        category = ExamCategory(**data.model_dump())
        self.db.add(category)
        await self.db.flush()

        await self.audit.log("CATEGORY_CREATED", "CATEGORY", category.id, actor.id, details={"name": category.name})
        await self.db.commit()
        return category

    async def update_category(self, category_id: str, data: CategoryUpdate, actor: User) -> ExamCategory:
        category = await self.get_category(category_id)
        updates = data.model_dump(exclude_unset=True, exclude_none=True)

        if "name" in updates and updates["name"] != category.name:
            await self._ensure_unique_name(updates["name"], exclude_id=category.id)

        for field, value in updates.items():
            setattr(category, field, value)

        await self.audit.log(
            "CATEGORY_UPDATED", "CATEGORY", category.id, actor.id,
            details={"fields": sorted(updates.keys())},
        )
        await self.db.commit()
        return category

    async def delete_category(self, category_id: str, actor: User) -> None:
        category = await self.get_category(category_id)

        exam_count = (await self.db.execute(
            select(func.count(Exam.id)).where(Exam.exam_category_id == category.id)
        )).scalar() or 0
        question_count = (await self.db.execute(
            select(func.count(Question.id)).where(Question.exam_category_id == category.id)
        )).scalar() or 0

        if exam_count or question_count:
            raise BusinessRuleError(
                "Cannot delete category with existing exams or questions",
                exams=exam_count,
                questions=question_count,
            )

        await self.audit.log("CATEGORY_DELETED", "CATEGORY", category.id, actor.id, details={"name": category.name})
        await self.db.delete(category)
        await self.db.commit()
