"""
Analytics endpoints for staff (analytics:read)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Optional

from app.core.database import get_db
from app.core.types import to_naive_utc
from app.models.user import User
from app.modules.auth.dependencies import require_permission
from app.schemas.common import success_response
from app.services.analytics_service import AnalyticsService

router = APIRouter()

analytics_reader = require_permission("analytics:read")


@router.get("/dashboard")
async def dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(analytics_reader)
):
    return success_response(await AnalyticsService(db).dashboard_statistics())


@router.get("/system")
async def system(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(analytics_reader)
):
    data = await AnalyticsService(db).system_analytics(to_naive_utc(start_date), to_naive_utc(end_date))
    return success_response(data)


@router.get("/categories")
async def categories(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(analytics_reader)
):
    return success_response(await AnalyticsService(db).category_analytics())


@router.get("/difficulty")
async def difficulty(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(analytics_reader)
):
    return success_response(await AnalyticsService(db).difficulty_analysis())


@router.get("/questions")
async def questions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(analytics_reader)
):
    return success_response(await AnalyticsService(db).question_analysis())


@router.get("/realtime")
async def realtime(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(analytics_reader)
):
    return success_response(await AnalyticsService(db).realtime_analytics())


@router.get("/exams/{exam_id}")
async def exam(
    exam_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(analytics_reader)
):
    data = await AnalyticsService(db).exam_analytics(exam_id, to_naive_utc(start_date), to_naive_utc(end_date))
    return success_response(data)
