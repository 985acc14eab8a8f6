"""
Student exam endpoints: catalogue, attempts, history and certificates.

Static paths are declared before /{exam_id} so they are not captured by it.
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_permission
from app.schemas.attempt import ResponseSubmit
from app.schemas.category import CategoryResponse
from app.schemas.common import success_response, paginated
from app.schemas.exam import ExamResponse
from app.services.attempt_service import AttemptService
from app.services.category_service import CategoryService
from app.services.certificate_service import CertificateService
from app.services.exam_service import ExamService

router = APIRouter()


# ==================== Catalogue ====================

@router.get("/categories")
async def exam_categories(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    categories = await CategoryService(db).list_categories()
    return success_response([CategoryResponse.model_validate(c).model_dump() for c in categories])


@router.get("/available")
async def available_exams(
    category_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Active public exams whose schedule window is open"""
    exams = await ExamService(db).available_exams(category_id)
    return success_response([ExamResponse.model_validate(e).model_dump() for e in exams])


# ==================== My activity ====================

@router.get("/history")
async def attempt_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    items, total = await AttemptService(db).history(current_user, page, limit)
    return success_response(paginated(items, total, page, limit))


@router.get("/upcoming")
async def upcoming_exams(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await AttemptService(db).upcoming(current_user))


@router.get("/stats")
async def my_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await AttemptService(db).stats(current_user))


# ==================== Certificates ====================

@router.get("/certificates")
async def my_certificates(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await CertificateService(db).list_for_user(current_user.id))


@router.get("/certificates/verify/{certificate_number}")
async def verify_certificate(certificate_number: str, db: AsyncSession = Depends(get_db)):
    """Public certificate verification"""
    return success_response(await CertificateService(db).verify(certificate_number))


@router.get("/certificates/{certificate_id}/download")
async def download_certificate(
    certificate_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = CertificateService(db)
    certificate = await service.get_certificate(certificate_id, current_user)
    document = await service.render_pdf(certificate)
    return Response(
        content=document["content"],
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document["filename"]}"'}
    )


# ==================== Attempts ====================

@router.get("/attempts/{attempt_id}")
async def get_attempt(
    attempt_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await AttemptService(db).get_attempt(attempt_id, current_user))


@router.post("/attempts/{attempt_id}/responses")
async def submit_response(
    attempt_id: str,
    data: ResponseSubmit,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("attempt:update"))
):
    response = await AttemptService(db, request).submit_response(attempt_id, current_user, data)
    return success_response(response, "Response saved")


@router.post("/attempts/{attempt_id}/complete")
async def complete_attempt(
    attempt_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("attempt:update"))
):
    result = await AttemptService(db, request).complete_attempt(attempt_id, current_user)
    return success_response(result, "Exam completed")


@router.get("/attempts/{attempt_id}/results")
async def attempt_results(
    attempt_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await AttemptService(db).get_results(attempt_id, current_user))


@router.post("/attempts/{attempt_id}/certificate")
async def generate_certificate(
    attempt_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    certificate = await CertificateService(db).generate_for_attempt(attempt_id, current_user)
    return success_response(CertificateService.serialize(certificate), "Certificate generated")


# ==================== Single exam ====================

@router.get("/{exam_id}")
async def exam_details(
    exam_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await ExamService(db).exam_details(exam_id, current_user))


@router.post("/{exam_id}/start")
async def start_exam(
    exam_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("attempt:create"))
):
    """Start a free exam directly; paid exams start from a booking"""
    payload = await AttemptService(db, request).start_direct(exam_id, current_user)
    return success_response(payload, "Exam started")


@router.get("/{exam_id}/leaderboard")
async def leaderboard(
    exam_id: str,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await AttemptService(db).leaderboard(exam_id, limit))
