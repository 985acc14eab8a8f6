"""
Question bank read endpoints for staff
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.question import Difficulty, QuestionType
from app.models.user import User
from app.modules.auth.dependencies import require_permission
from app.schemas.common import success_response, paginated
from app.schemas.question import QuestionResponse as QuestionOut
from app.services.question_service import QuestionService

router = APIRouter()


@router.get("")
async def list_questions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category_id: Optional[str] = None,
    difficulty: Optional[Difficulty] = None,
    type: Optional[QuestionType] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=200),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("question:read"))
):
    questions, total = await QuestionService(db).list_questions(
        page=page,
        limit=limit,
        category_id=category_id,
        difficulty=difficulty,
        question_type=type,
        is_active=is_active,
        search=search,
    )
    return success_response(paginated(
        [QuestionOut.model_validate(q).model_dump() for q in questions], total, page, limit
    ))


@router.get("/{question_id}")
async def get_question(
    question_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("question:read"))
):
    question = await QuestionService(db).get_question(question_id)
    return success_response(QuestionOut.model_validate(question).model_dump())


@router.get("/{question_id}/stats")
async def question_stats(
    question_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("question:read"))
):
    return success_response(await QuestionService(db).question_stats(question_id))
