"""
Admin Exam Management endpoints.
"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import require_admin, require_permission
from app.schemas.common import success_response, paginated
from app.schemas.exam import ExamApprove, ExamCreate, ExamResponse, ExamUpdate
from app.services.exam_service import ExamService

router = APIRouter()


@router.get("")
async def list_exams(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=200),
    category_id: Optional[str] = None,
    is_active: Optional[bool] = None,
    is_public: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("exam:read"))
):
    exams, total = await ExamService(db).list_exams(page, limit, search, category_id, is_active, is_public)
    return success_response(paginated(
        [ExamResponse.model_validate(e).model_dump() for e in exams], total, page, limit
    ))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_exam(
    data: ExamCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("exam:create"))
):
    exam = await ExamService(db, request).create_exam(data, current_user)
    return success_response(ExamResponse.model_validate(exam).model_dump(), "Exam created")


@router.get("/{exam_id}")
async def get_exam(
    exam_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("exam:read"))
):
    exam = await ExamService(db).get_exam(exam_id)
    return success_response(ExamResponse.model_validate(exam).model_dump())


@router.put("/{exam_id}")
async def update_exam(
    exam_id: str,
    data: ExamUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("exam:update"))
):
    exam = await ExamService(db, request).update_exam(exam_id, data, current_user)
    return success_response(ExamResponse.model_validate(exam).model_dump(), "Exam updated")


@router.delete("/{exam_id}")
async def delete_exam(
    exam_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("exam:delete"))
):
    await ExamService(db, request).delete_exam(exam_id, current_user)
    return success_response(message="Exam deleted")


@router.patch("/{exam_id}/approve")
async def approve_exam(
    exam_id: str,
    request: Request,
    data: Optional[ExamApprove] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    approved = data.is_approved if data else True
    exam = await ExamService(db, request).approve_exam(exam_id, current_user, approved)
    return success_response(
        ExamResponse.model_validate(exam).model_dump(),
        "Exam approved" if approved else "Exam approval revoked"
    )
