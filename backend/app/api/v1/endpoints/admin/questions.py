"""
Admin Question Bank endpoints.
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import require_permission, require_staff
from app.schemas.common import success_response
from app.schemas.question import (
    BulkQuestionImport, EssayScoreRequest, QuestionCreate, QuestionUpdate,
    QuestionResponse as QuestionOut,
)
from app.services.essay_scoring_service import essay_scoring_service
from app.services.question_service import QuestionService

router = APIRouter()


@router.post("/score-essay")
async def score_essay(
    data: EssayScoreRequest,
    current_user: User = Depends(require_staff)
):
    """Run the essay scorer on an arbitrary answer for calibration"""
    return success_response(
        essay_scoring_service.score_essay(data.student_answer, data.model_answer, data.max_marks)
    )


@router.post("/bulk-import")
async def bulk_import_questions(
    data: BulkQuestionImport,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("question:create"))
):
    report = await QuestionService(db, request).bulk_import(data.questions, current_user)
    return success_response(report, f"Imported {report['summary']['successful']} questions")


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_question(
    data: QuestionCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("question:create"))
):
    service = QuestionService(db, request)
    question = await service.create_question(data, current_user)
    question = await service.get_question(question.id)
    return success_response(QuestionOut.model_validate(question).model_dump(), "Question created")


@router.put("/{question_id}")
async def update_question(
    question_id: str,
    data: QuestionUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("question:update"))
):
    question = await QuestionService(db, request).update_question(question_id, data, current_user)
    return success_response(QuestionOut.model_validate(question).model_dump(), "Question updated")


@router.delete("/{question_id}")
async def delete_question(
    question_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("question:delete"))
):
    await QuestionService(db, request).delete_question(question_id, current_user)
    return success_response(message="Question deleted")
