"""
Exam booking endpoints
"""
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.booking import BookingStatus
from app.models.user import User
from app.modules.auth.dependencies import get_current_user, require_admin, require_permission
from app.schemas.booking import (
    AdminBookingCreate, BookingCancel, BookingCreate, BookingStatusUpdate, BookingUpdate
)
from app.schemas.common import success_response, paginated
from app.services.billing_service import BillingService
from app.services.booking_service import BookingService, serialize_booking

router = APIRouter()


# ==================== Admin ====================

@router.get("/admin/all")
async def all_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: Optional[str] = None,
    exam_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    items, total = await BookingService(db).list_all(page, limit, status_filter, user_id, exam_id)
    return success_response(paginated(items, total, page, limit))


@router.get("/admin/analytics")
async def booking_analytics(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    return success_response(await BookingService(db).analytics())


@router.post("/admin", status_code=status.HTTP_201_CREATED)
async def admin_create_booking(
    data: AdminBookingCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Book an exam on behalf of a user"""
    booking = await BookingService(db, request).admin_create_booking(data, current_user)
    bill = await BillingService(db).build_bill(booking)
    return success_response({"booking": serialize_booking(booking), "bill": bill}, "Booking created")


@router.patch("/admin/{booking_id}/status")
async def update_booking_status(
    booking_id: str,
    data: BookingStatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    booking = await BookingService(db, request).update_status(booking_id, data, current_user)
    return success_response(serialize_booking(booking), "Booking status updated")


# ==================== Student ====================

@router.get("/available-exams")
async def available_exams(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Exams the current user can book now"""
    return success_response(await BookingService(db).available_exams(current_user))


@router.get("/stats")
async def booking_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await BookingService(db).user_stats(current_user))


@router.get("/can-book/{exam_id}")
async def can_book(
    exam_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return success_response(await BookingService(db).can_book(exam_id, current_user))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_permission("booking:create"))
):
    booking = await BookingService(db, request).create_booking(data, current_user)
    bill = await BillingService(db).build_bill(booking)
    return success_response({"booking": serialize_booking(booking), "bill": bill}, "Exam booked successfully")


@router.get("")
async def my_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    items, total = await BookingService(db).list_user_bookings(current_user, page, limit, status_filter)
    return success_response(paginated(items, total, page, limit))


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    booking = await BookingService(db).get_for_user(booking_id, current_user)
    return success_response(serialize_booking(booking))


@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    booking = await BookingService(db, request).update_booking(booking_id, data, current_user)
    return success_response(serialize_booking(booking), "Booking updated")


@router.delete("/{booking_id}")
async def cancel_booking(
    booking_id: str,
    request: Request,
    data: Optional[BookingCancel] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    reason = data.reason if data else None
    booking = await BookingService(db, request).cancel_booking(booking_id, current_user, reason)
    return success_response(serialize_booking(booking), "Booking cancelled")


@router.post("/{booking_id}/start-exam")
async def start_exam(
    booking_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    payload = await BookingService(db, request).start_exam(booking_id, current_user)
    return success_response(payload, "Exam started")
