"""
Question Bank Service
CRUD, bulk import and per-question statistics
"""

from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, case
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    BusinessRuleError, MockExamError, QuestionNotFoundError, ValidationError
)
from app.core.logging_config import logger
from app.models.question import Question, QuestionOption, QuestionType, Difficulty
from app.models.attempt import QuestionResponse
from app.models.user import User
from app.schemas.question import (
    QuestionCreate, QuestionUpdate, question_rule_violations
)
from app.services.audit_service import AuditService
from app.services.category_service import CategoryService


class QuestionService:
    """Service for the question bank"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.audit = AuditService(db, request)

    async def list_questions(
        self,
        page: int = 1,
        limit: int = 20,
        category_id: Optional[str] = None,
        difficulty: Optional[Difficulty] = None,
        question_type: Optional[QuestionType] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Question], int]:
        filters = []
        if category_id:
            filters.append(Question.exam_category_id == category_id)
        if difficulty:
            filters.append(Question.difficulty == difficulty)
        if question_type:
            filters.append(Question.type == question_type)
        if is_active is not None:
            filters.append(Question.is_active == is_active)
        if search:
            pattern = f"%{search}%"
            filters.append(or_(Question.text.ilike(pattern), Question.explanation.ilike(pattern)))

        total = (await self.db.execute(select(func.count(Question.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(Question)
            .options(selectinload(Question.options))
            .where(*filters)
            .order_by(Question.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_question(self, question_id: str) -> Question:
        result = await self.db.execute(
            select(Question)
            .options(selectinload(Question.options))
            .where(Question.id == question_id)
        )
        question = result.scalar_one_or_none()
        if not question:
            raise QuestionNotFoundError(question_id)
        return question

    def _build(self, data: QuestionCreate, actor: User) -> Question:
        fields = data.model_dump(exclude={"options"})
        return Question(
            **fields,
            created_by=actor.id,
            options=[QuestionOption(**o.model_dump()) for o in data.options],
        )

    async def create_question(self, data: QuestionCreate, actor: User, commit: bool = True) -> Question:
        await CategoryService(self.db).get_category(data.exam_category_id)

        question = self._build(data, actor)
        self.db.add(question)
        await self.db.flush()

        if commit:
            await self.audit.log(
                "QUESTION_CREATED", "QUESTION", question.id, actor.id,
                details={"type": question.type.value},
            )
            await self.db.commit()
        return question

    async def update_question(self, question_id: str, data: QuestionUpdate, actor: User) -> Question:
        question = await self.get_question(question_id)
        updates = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"options"})

        if "exam_category_id" in updates:
            await CategoryService(self.db).get_category(updates["exam_category_id"])

        effective_type = updates.get("type", question.type)
        effective_options = data.options if data.options is not None else question.options
        effective_answer = updates.get("correct_answer", question.correct_answer)
        errors = question_rule_violations(effective_type, effective_options, effective_answer)
        if errors:
            raise ValidationError("; ".join(errors), field="options")

        for field, value in updates.items():
            setattr(question, field, value)

        if data.options is not None:
            question.options = [QuestionOption(**o.model_dump()) for o in data.options]

        await self.audit.log(
            "QUESTION_UPDATED", "QUESTION", question.id, actor.id,
            details={"fields": sorted(data.model_dump(exclude_unset=True, exclude_none=True).keys())},
        )
        await self.db.commit()
        return await self.get_question(question.id)

    async def delete_question(self, question_id: str, actor: User) -> None:
        question = await self.get_question(question_id)

        responses = (await self.db.execute(
            select(func.count(QuestionResponse.id)).where(QuestionResponse.question_id == question.id)
        )).scalar() or 0
        if responses:
            raise BusinessRuleError("Cannot delete question with existing responses", responses=responses)

        await self.audit.log("QUESTION_DELETED", "QUESTION", question.id, actor.id)
        await self.db.delete(question)
        await self.db.commit()

    async def bulk_import(self, items: List[Dict[str, Any]], actor: User) -> Dict[str, Any]:
        """Import questions individually, collecting a per-row report"""
        successful, failed = [], []

        for index, raw in enumerate(items):
            try:
                data = QuestionCreate.model_validate(raw)
                question = await self.create_question(data, actor, commit=False)
                successful.append({"index": index, "id": question.id})
            except SchemaValidationError as e:
                failed.append({
                    "index": index,
                    "error": "; ".join(err["msg"] for err in e.errors()),
                })
            except MockExamError as e:
                failed.append({"index": index, "error": e.message})

        await self.audit.log(
            "BULK_QUESTION_IMPORT", "QUESTION", None, actor.id,
            details={"successful": len(successful), "failed": len(failed)},
        )
        await self.db.commit()
        logger.info(f"[Questions] Bulk import: {len(successful)} created, {len(failed)} failed")
        return {
            "successful": successful,
            "failed": failed,
            "summary": {"total": len(items), "successful": len(successful), "failed": len(failed)},
        }

    async def question_stats(self, question_id: str) -> Dict[str, Any]:
        question = await self.get_question(question_id)

        row = (await self.db.execute(
            select(
                func.count(QuestionResponse.id),
                func.sum(case((QuestionResponse.is_correct.is_(True), 1), else_=0)),
                func.avg(QuestionResponse.time_spent),
            ).where(QuestionResponse.question_id == question.id)
        )).one()

        total = row[0] or 0
        correct = int(row[1] or 0)
        return {
            "question_id": question.id,
            "usage_count": question.usage_count,
            "total_responses": total,
            "correct_responses": correct,
            "accuracy": round(correct / total * 100, 2) if total else 0.0,
            "average_time": round(float(row[2] or 0), 2),
        }
