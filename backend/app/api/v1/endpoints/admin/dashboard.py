"""
Admin Dashboard endpoints.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import require_admin
from app.schemas.common import success_response
from app.services.analytics_service import AnalyticsService

router = APIRouter()


@router.get("/stats")
async def get_dashboard_stats(
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    """Overview counts, recent activity and growth charts"""
    return success_response(await AnalyticsService(db).dashboard_statistics())
