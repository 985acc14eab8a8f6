"""
Admin System endpoints: health, audit trail, analytics and data export.
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Optional

from app.core.database import get_db
from app.core.types import to_naive_utc
from app.models.user import User
from app.modules.auth.dependencies import require_admin, require_permission
from app.schemas.common import success_response, paginated
from app.services.admin_service import AdminService
from app.services.analytics_service import AnalyticsService
from app.services.audit_service import AuditService

router = APIRouter()


@router.get("/health")
async def system_health(
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    return success_response(await AdminService(db).health())


@router.get("/audit-logs")
async def audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("audit:read"))
):
    logs, total = await AuditService(db).list_logs(
        page=page,
        limit=limit,
        user_id=user_id,
        action=action,
        resource=resource,
        start_date=to_naive_utc(start_date),
        end_date=to_naive_utc(end_date),
    )
    return success_response(paginated([AuditService.serialize(e) for e in logs], total, page, limit))


@router.get("/analytics")
async def system_analytics(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    data = await AnalyticsService(db).system_analytics(to_naive_utc(start_date), to_naive_utc(end_date))
    return success_response(data)


@router.get("/export")
async def export_data(
    request: Request,
    resource: str = Query(...),
    format: str = Query("csv"),
    db: AsyncSession = Depends(get_db),
    current_admin: User = Depends(require_admin)
):
    """Export users, exams, bookings, payments or attempts as CSV or JSON"""
    export = await AdminService(db, request).export(resource, format, current_admin)
    return StreamingResponse(
        iter([export["content"]]),
        media_type=export["media_type"],
        headers={"Content-Disposition": f"attachment; filename={export['filename']}"}
    )
