"""
Billing endpoints: bills derived from bookings and their PDF download
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_admin
from app.schemas.common import success_response, paginated
from app.services.billing_service import BillingService

router = APIRouter()


@router.get("/user/bills")
async def my_bills(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await BillingService(db).user_bills(current_user))


@router.get("/admin/all")
async def all_bills(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    bills, total = await BillingService(db).all_bills(page, limit)
    return success_response(paginated(bills, total, page, limit))


@router.get("/{booking_id}")
async def get_bill(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await BillingService(db).bill_for_booking(booking_id, current_user))


@router.get("/{booking_id}/download")
async def download_bill(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    document = await BillingService(db).bill_pdf(booking_id, current_user)
    return Response(
        content=document["content"],
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document["filename"]}"'}
    )
