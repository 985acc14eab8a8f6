"""
Exam Service
Exam management for staff and the student-facing catalogue
"""

from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from app.core.exceptions import BusinessRuleError, ExamNotFoundError
from app.core.types import utcnow
from app.models.exam import Exam
from app.models.exam_category import ExamCategory
from app.models.question import Question
from app.models.attempt import ExamAttempt
from app.models.user import User
from app.schemas.exam import ExamCreate, ExamUpdate, ExamResponse
from app.services.audit_service import AuditService
from app.services.category_service import CategoryService


def available_filters(now=None) -> list:
    """Active, public exams whose booking window is open or unset"""
    now = now or utcnow()
    return [
        Exam.is_active.is_(True),
        Exam.is_public.is_(True),
        or_(Exam.scheduled_start.is_(None), Exam.scheduled_start <= now),
        or_(Exam.scheduled_end.is_(None), Exam.scheduled_end >= now),
    ]


class ExamService:
    """Service for exams"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.audit = AuditService(db, request)

    async def get_exam(self, exam_id: str) -> Exam:
        result = await self.db.execute(select(Exam).where(Exam.id == exam_id))
        exam = result.scalar_one_or_none()
        if not exam:
            raise ExamNotFoundError(exam_id)
        return exam

    async def list_exams(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        category_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        is_public: Optional[bool] = None,
    ) -> Tuple[List[Exam], int]:
        filters = []
        if search:
            pattern = f"%{search}%"
            filters.append(or_(Exam.title.ilike(pattern), Exam.description.ilike(pattern)))
        if category_id:
            filters.append(Exam.exam_category_id == category_id)
        if is_active is not None:
            filters.append(Exam.is_active == is_active)
        if is_public is not None:
            filters.append(Exam.is_public == is_public)

        total = (await self.db.execute(select(func.count(Exam.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(Exam).where(*filters)
            .order_by(Exam.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def create_exam(self, data: ExamCreate, actor: User) -> Exam:
        await CategoryService(self.db).get_category(data.exam_category_id)

        exam = Exam(**data.model_dump(), created_by=actor.id)
        self.db.add(exam)
        await self.db.flush()

        await self.audit.log(
            "EXAM_CREATED", "EXAM", exam.id, actor.id,
            details={"title": exam.title, "price": exam.price},
        )
        await self.db.commit()
        return exam

    async def update_exam(self, exam_id: str, data: ExamUpdate, actor: User) -> Exam:
        exam = await self.get_exam(exam_id)
        updates = data.model_dump(exclude_unset=True, exclude_none=True)

        if "exam_category_id" in updates:
            await CategoryService(self.db).get_category(updates["exam_category_id"])

        start = updates.get("scheduled_start", exam.scheduled_start)
        end = updates.get("scheduled_end", exam.scheduled_end)
        if start and end and end < start:
            raise BusinessRuleError("Scheduled end must be after scheduled start")

        for field, value in updates.items():
            setattr(exam, field, value)

        if "question_type_counts" in updates and "total_questions" not in updates:
            exam.total_questions = sum((exam.question_type_counts or {}).values()) or exam.total_questions

        await self.audit.log(
            "EXAM_UPDATED", "EXAM", exam.id, actor.id,
            details={"fields": sorted(updates.keys())},
        )
        await self.db.commit()
        return exam

    async def delete_exam(self, exam_id: str, actor: User) -> None:
        exam = await self.get_exam(exam_id)

        attempts = (await self.db.execute(
            select(func.count(ExamAttempt.id)).where(ExamAttempt.exam_id == exam.id)
        )).scalar() or 0
        if attempts:
            raise BusinessRuleError("Cannot delete exam with existing attempts", attempts=attempts)

        await self.audit.log("EXAM_DELETED", "EXAM", exam.id, actor.id, details={"title": exam.title})
        await self.db.delete(exam)
        await self.db.commit()

    async def approve_exam(self, exam_id: str, actor: User, approved: bool = True) -> Exam:
        exam = await self.get_exam(exam_id)
        exam.is_approved = approved
        exam.approved_by = actor.id if approved else None
        exam.approved_at = utcnow() if approved else None
        exam.is_active = approved

        await self.audit.log(
            "EXAM_APPROVED" if approved else "EXAM_UNAPPROVED", "EXAM", exam.id, actor.id,
        )
        await self.db.commit()
        return exam

    # ==================== Student catalogue ====================

    async def available_exams(self, category_id: Optional[str] = None) -> List[Exam]:
        query = select(Exam).where(*available_filters())
        if category_id:
            query = query.where(Exam.exam_category_id == category_id)
        result = await self.db.execute(query.order_by(Exam.title))
        return list(result.scalars().all())

    async def exam_details(self, exam_id: str, user: User) -> Dict[str, Any]:
        exam = await self.get_exam(exam_id)

        category_name = (await self.db.execute(
            select(ExamCategory.name).where(ExamCategory.id == exam.exam_category_id)
        )).scalar()
        question_count = (await self.db.execute(
            select(func.count(Question.id)).where(
                Question.exam_category_id == exam.exam_category_id,
                Question.is_active.is_(True),
            )
        )).scalar() or 0
        user_attempts = (await self.db.execute(
            select(func.count(ExamAttempt.id)).where(
                ExamAttempt.exam_id == exam.id,
                ExamAttempt.user_id == user.id,
            )
        )).scalar() or 0

        return {
            **ExamResponse.model_validate(exam).model_dump(),
            "category_name": category_name,
            "question_count": exam.total_questions or question_count,
            "available_questions": question_count,
            "user_attempts": user_attempts,
        }
