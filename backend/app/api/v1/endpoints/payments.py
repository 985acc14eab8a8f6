"""
Payment endpoints

Payments are recorded, not charged: the client reports the gateway outcome
through /{id}/process, and printing a bill records a cash payment.
"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Optional

from app.core.database import get_db
from app.core.types import to_naive_utc
from app.models.payment import PaymentStatus, PaymentMethod
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_admin, require_permission
from app.schemas.common import success_response, paginated
from app.schemas.payment import PaymentCreate, PaymentProcess, PaymentRefund
from app.services.payment_service import PaymentService, serialize_payment

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_payment(
    data: PaymentCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("payment:create"))
):
    payment = await PaymentService(db, request).create_payment(data, current_user)
    return success_response(serialize_payment(payment), "Payment created")


@router.get("/history")
async def payment_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    payments, total = await PaymentService(db).history(current_user, page, limit)
    return success_response(paginated([serialize_payment(p) for p in payments], total, page, limit))


@router.get("/stats/analytics")
async def payment_stats(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    stats = await PaymentService(db).stats(to_naive_utc(start_date), to_naive_utc(end_date))
    return success_response(stats)


@router.get("/admin/all")
async def all_payments(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    payment_method: Optional[PaymentMethod] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    payments, total = await PaymentService(db).list_all(page, limit, status_filter, payment_method)
    return success_response(paginated([serialize_payment(p) for p in payments], total, page, limit))


@router.post("/admin/process-on-print/{booking_id}")
async def process_on_print(
    booking_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Record a cash payment when the bill for a booking is printed"""
    result = await PaymentService(db, request).process_on_print(booking_id, current_user)
    message = "Payment processed successfully" if result["created"] else "Payment already exists for this booking"
    return success_response(
        {"payment": serialize_payment(result["payment"]), "bill": result["bill"]},
        message
    )


@router.get("/{payment_id}")
async def get_payment(
    payment_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    payment = await PaymentService(db).get_for_user(payment_id, current_user)
    return success_response(serialize_payment(payment))


@router.post("/{payment_id}/process")
async def process_payment(
    payment_id: str,
    data: PaymentProcess,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    payment = await PaymentService(db, request).process_payment(payment_id, data, current_user)
    return success_response(serialize_payment(payment), "Payment processed")


@router.post("/{payment_id}/refund")
async def refund_payment(
    payment_id: str,
    data: PaymentRefund,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    payment = await PaymentService(db, request).refund_payment(payment_id, data, current_user)
    return success_response(serialize_payment(payment), "Payment refunded")
