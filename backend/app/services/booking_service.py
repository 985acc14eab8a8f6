"""
Exam Booking Service

Booking eligibility, scheduling validation, the booking lifecycle
(PENDING -> CONFIRMED -> COMPLETED, or CANCELLED) and booking analytics.
"""

from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime, timedelta
import math

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError, BookingNotFoundError, BusinessRuleError, ConflictError
)
from app.core.logging_config import logger
from app.core.permissions import is_staff
from app.core.types import utcnow
from app.models.attempt import ExamAttempt, AttemptStatus
from app.models.booking import ExamBooking, BookingStatus, ACTIVE_BOOKING_STATUSES
from app.models.exam import Exam
from app.models.user import User
from app.schemas.booking import (
    AdminBookingCreate, BookingCreate, BookingResponse, BookingStatusUpdate, BookingUpdate
)
from app.services.attempt_service import AttemptService
from app.services.audit_service import AuditService
from app.services.exam_service import ExamService, available_filters
from app.services.user_service import UserService


def booking_window_reason(exam: Exam, now: datetime) -> Optional[str]:
    """Why the exam cannot be booked right now, or None when the window is open"""
    if exam.scheduled_start and now < exam.scheduled_start:
        days = max(math.ceil((exam.scheduled_start - now).total_seconds() / 86400), 1)
        return f"Exam will be available for booking in {days} days"
    if exam.scheduled_end and now > exam.scheduled_end:
        return "Exam booking period has ended"
    return None


def serialize_booking(booking: ExamBooking) -> Dict[str, Any]:
    return BookingResponse.model_validate(booking).model_dump()


class BookingService:
    """Service for exam bookings"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.request = request
        self.audit = AuditService(db, request)

    # ==================== Loading ====================

    async def get_booking(self, booking_id: str) -> ExamBooking:
        result = await self.db.execute(select(ExamBooking).where(ExamBooking.id == booking_id))
        booking = result.scalar_one_or_none()
        if not booking:
            raise BookingNotFoundError(booking_id)
        return booking

    async def get_for_user(self, booking_id: str, user: User) -> ExamBooking:
        """Owner or staff"""
        booking = await self.get_booking(booking_id)
        if booking.user_id != user.id and not is_staff(user.role):
            raise AuthorizationError("You can only access your own bookings")
        return booking

    async def _own_booking(self, booking_id: str, user: User) -> ExamBooking:
        booking = await self.get_booking(booking_id)
        if booking.user_id != user.id:
            raise BookingNotFoundError(booking_id)
        return booking

    # ==================== Eligibility ====================

    async def _attempt_counts(self, exam_id: str, user_id: str) -> Dict[AttemptStatus, int]:
        result = await self.db.execute(
            select(ExamAttempt.status, func.count(ExamAttempt.id))
            .where(ExamAttempt.exam_id == exam_id, ExamAttempt.user_id == user_id)
            .group_by(ExamAttempt.status)
        )
        return {status: count for status, count in result.all()}

    async def can_book(self, exam_id: str, user: User, exam: Optional[Exam] = None) -> Dict[str, Any]:
        """{can_book, reason}"""
        if exam is None:
            exam = (await self.db.execute(select(Exam).where(Exam.id == exam_id))).scalar_one_or_none()
        if not exam:
            return {"can_book": False, "reason": "Exam not found"}
        if not exam.is_active:
            return {"can_book": False, "reason": "Exam is not active"}

        counts = await self._attempt_counts(exam.id, user.id)
        taken = counts.get(AttemptStatus.COMPLETED, 0) + counts.get(AttemptStatus.IN_PROGRESS, 0)
        if taken and not exam.allow_retakes:
            return {"can_book": False, "reason": "Retakes are not allowed for this exam"}
        if taken >= 1 + (exam.max_retakes or 0):
            return {"can_book": False, "reason": "Maximum retakes reached"}

        reason = booking_window_reason(exam, utcnow())
        if reason:
            return {"can_book": False, "reason": reason}
        return {"can_book": True, "reason": None}

    async def validate_schedule(
        self, exam: Exam, user_id: str, scheduled_at: datetime, exclude_id: Optional[str] = None
    ) -> None:
        if scheduled_at <= utcnow():
            raise BusinessRuleError("Scheduled time must be in the future")
        if not exam.window_contains(scheduled_at):
            raise BusinessRuleError("Scheduled time is outside the exam availability window")

        window = timedelta(hours=settings.BOOKING_CONFLICT_WINDOW_HOURS)
        query = select(ExamBooking.id).where(
            ExamBooking.user_id == user_id,
            ExamBooking.exam_id == exam.id,
            ExamBooking.status.in_(ACTIVE_BOOKING_STATUSES),
            ExamBooking.scheduled_at >= scheduled_at - window,
            ExamBooking.scheduled_at <= scheduled_at + window,
        )
        if exclude_id:
            query = query.where(ExamBooking.id != exclude_id)
        conflict = (await self.db.execute(query.limit(1))).scalar()
        if conflict:
            raise ConflictError(
                "You already have a booking for this exam around the selected time",
                booking_id=conflict,
            )

    # ==================== Create ====================

    async def create_booking(self, data: BookingCreate, user: User) -> ExamBooking:
        exam = await ExamService(self.db).get_exam(data.exam_id)
        if not exam.is_active or not exam.is_public:
            raise BusinessRuleError("Exam is not available for booking")

        check = await self.can_book(exam.id, user, exam=exam)
        if not check["can_book"]:
            raise BusinessRuleError(check["reason"])

        await self.validate_schedule(exam, user.id, data.scheduled_at)

        free = (exam.price or 0) == 0
        booking = ExamBooking(
            user_id=user.id,
            exam_id=exam.id,
            scheduled_at=data.scheduled_at,
            attempts_allowed=data.attempts_allowed,
            total_amount=exam.price or 0,
            currency=exam.currency,
            notes=data.notes,
            status=BookingStatus.CONFIRMED if free else BookingStatus.PENDING,
            created_by=user.id,
        )
        self.db.add(booking)
        await self.db.flush()

        await self.audit.log(
            "EXAM_BOOKING_CREATED", "EXAM_BOOKING", booking.id, user.id,
            details={"exam_id": exam.id, "scheduled_at": booking.scheduled_at.isoformat(), "amount": booking.total_amount},
        )
        await self.db.commit()
        logger.info(f"[Bookings] {user.email} booked exam {exam.id} ({booking.status.value})")
        return booking

    async def admin_create_booking(self, data: AdminBookingCreate, actor: User) -> ExamBooking:
        """Book on behalf of a user; public and retake checks do not apply"""
        target = await UserService(self.db).get_user(data.user_id)
        exam = await ExamService(self.db).get_exam(data.exam_id)
        if not exam.is_active:
            raise BusinessRuleError("Exam is not active")

        await self.validate_schedule(exam, target.id, data.scheduled_at)

        booking = ExamBooking(
            user_id=target.id,
            exam_id=exam.id,
            scheduled_at=data.scheduled_at,
            attempts_allowed=data.attempts_allowed,
            total_amount=exam.price or 0,
            currency=exam.currency,
            notes=data.notes,
            status=BookingStatus.CONFIRMED,
            created_by=actor.id,
        )
        self.db.add(booking)
        await self.db.flush()

        await self.audit.log(
            "EXAM_BOOKING_CREATED", "EXAM_BOOKING", booking.id, actor.id,
            details={"exam_id": exam.id, "user_id": target.id, "by_admin": True},
        )
        await self.db.commit()
        return booking

    # ==================== Queries ====================

    async def list_user_bookings(
        self, user: User, page: int = 1, limit: int = 10, status: Optional[BookingStatus] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        filters = [ExamBooking.user_id == user.id]
        if status:
            filters.append(ExamBooking.status == status)
        return await self._list(filters, page, limit)

    async def list_all(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[BookingStatus] = None,
        user_id: Optional[str] = None,
        exam_id: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        filters = []
        if status:
            filters.append(ExamBooking.status == status)
        if user_id:
            filters.append(ExamBooking.user_id == user_id)
        if exam_id:
            filters.append(ExamBooking.exam_id == exam_id)
        return await self._list(filters, page, limit)

    async def _list(self, filters: list, page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        total = (await self.db.execute(select(func.count(ExamBooking.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(ExamBooking, Exam.title, User.email)
            .join(Exam, ExamBooking.exam_id == Exam.id)
            .join(User, ExamBooking.user_id == User.id)
            .where(*filters)
            .order_by(ExamBooking.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [
            {**serialize_booking(booking), "exam_title": title, "user_email": email}
            for booking, title, email in result.all()
        ]
        return items, total

    # ==================== Update / cancel ====================

    async def update_booking(self, booking_id: str, data: BookingUpdate, user: User) -> ExamBooking:
        booking = await self._own_booking(booking_id, user)
        if booking.status != BookingStatus.PENDING:
            raise BusinessRuleError("Only pending bookings can be updated")

        updates = data.model_dump(exclude_unset=True)
        if updates.get("scheduled_at"):
            exam = await ExamService(self.db).get_exam(booking.exam_id)
            await self.validate_schedule(exam, user.id, updates["scheduled_at"], exclude_id=booking.id)

        for field, value in updates.items():
            if value is not None:
                setattr(booking, field, value)

        await self.audit.log(
            "EXAM_BOOKING_UPDATED", "EXAM_BOOKING", booking.id, user.id,
            details={"fields": sorted(updates.keys())},
        )
        await self.db.commit()
        return booking

    async def cancel_booking(self, booking_id: str, user: User, reason: Optional[str] = None) -> ExamBooking:
        booking = await self.get_for_user(booking_id, user)
        if booking.status == BookingStatus.CANCELLED:
            raise BusinessRuleError("Booking is already cancelled")
        if booking.status == BookingStatus.COMPLETED:
            raise BusinessRuleError("Cannot cancel a completed booking")

        active = (await self.db.execute(
            select(func.count(ExamAttempt.id)).where(
                ExamAttempt.booking_id == booking.id,
                ExamAttempt.status == AttemptStatus.IN_PROGRESS,
            )
        )).scalar() or 0
        if active:
            raise BusinessRuleError("Cannot cancel booking with active exam attempts")

        booking.status = BookingStatus.CANCELLED
        if reason:
            booking.append_note(f"Cancellation reason: {reason}")

        await self.audit.log(
            "EXAM_BOOKING_CANCELLED", "EXAM_BOOKING", booking.id, user.id,
            details={"reason": reason},
        )
        await self.db.commit()
        logger.info(f"[Bookings] Booking {booking.id} cancelled by {user.id}")
        return booking

    async def update_status(self, booking_id: str, data: BookingStatusUpdate, actor: User) -> ExamBooking:
        booking = await self.get_booking(booking_id)
        old_status = booking.status
        booking.status = BookingStatus(data.status)
        if data.notes:
            booking.append_note(f"Admin note: {data.notes}")

        await self.audit.log(
            "BOOKING_STATUS_UPDATED", "EXAM_BOOKING", booking.id, actor.id,
            details={"old_status": old_status.value, "new_status": booking.status.value},
        )
        await self.db.commit()
        return booking

    # ==================== Start exam ====================

    async def start_exam(self, booking_id: str, user: User) -> Dict[str, Any]:
        booking = await self._own_booking(booking_id, user)
        if booking.status != BookingStatus.CONFIRMED:
            raise BusinessRuleError("Booking must be confirmed to start the exam")
        if booking.attempts_used >= booking.attempts_allowed:
            raise BusinessRuleError("No attempts remaining for this booking")

        exam = await ExamService(self.db).get_exam(booking.exam_id)
        attempts = AttemptService(self.db, self.request)
        await attempts.check_can_start(exam, user)

        booking.attempts_used = (booking.attempts_used or 0) + 1
        await self.audit.log(
            "EXAM_STARTED_FROM_BOOKING", "EXAM_BOOKING", booking.id, user.id,
            details={"exam_id": exam.id, "attempt_number": booking.attempts_used},
        )
        payload = await attempts.start_attempt(exam, user, booking=booking)
        payload["booking"] = serialize_booking(booking)
        return payload

    # ==================== Catalogue / stats ====================

    async def available_exams(self, user: User) -> List[Dict[str, Any]]:
        result = await self.db.execute(select(Exam).where(*available_filters()).order_by(Exam.title))
        exams = []
        for exam in result.scalars().all():
            check = await self.can_book(exam.id, user, exam=exam)
            if check["can_book"]:
                exams.append({
                    "id": exam.id,
                    "title": exam.title,
                    "description": exam.description,
                    "exam_category_id": exam.exam_category_id,
                    "duration": exam.duration,
                    "price": exam.price,
                    "currency": exam.currency,
                    "scheduled_start": exam.scheduled_start.isoformat() if exam.scheduled_start else None,
                    "scheduled_end": exam.scheduled_end.isoformat() if exam.scheduled_end else None,
                })
        return exams

    async def user_stats(self, user: User) -> Dict[str, Any]:
        result = await self.db.execute(select(ExamBooking).where(ExamBooking.user_id == user.id))
        bookings = list(result.scalars().all())

        def count(status: BookingStatus) -> int:
            return sum(1 for b in bookings if b.status == status)

        spent = sum(
            float(b.total_amount or 0) for b in bookings
            if b.status in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
        )
        average_score = (await self.db.execute(
            select(func.avg(ExamAttempt.percentage)).where(
                ExamAttempt.user_id == user.id,
                ExamAttempt.status == AttemptStatus.COMPLETED,
            )
        )).scalar()

        total = len(bookings)
        completed = count(BookingStatus.COMPLETED)
        return {
            "total": total,
            "confirmed": count(BookingStatus.CONFIRMED),
            "pending": count(BookingStatus.PENDING),
            "cancelled": count(BookingStatus.CANCELLED),
            "completed": completed,
            "totalSpent": round(spent, 2),
            "averageScore": round(float(average_score), 2) if average_score is not None else 0.0,
            "completionRate": round(completed / total * 100, 2) if total else 0.0,
        }

    async def analytics(self) -> Dict[str, Any]:
        result = await self.db.execute(
            select(ExamBooking.status, func.count(ExamBooking.id), func.sum(ExamBooking.total_amount))
            .group_by(ExamBooking.status)
        )
        by_status: Dict[str, int] = {}
        revenue = 0.0
        for status, count, amount in result.all():
            by_status[status.value] = count
            if status in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
                revenue += float(amount or 0)
        return {
            "totalBookings": sum(by_status.values()),
            "totalRevenue": round(revenue, 2),
            "bookingsByStatus": by_status,
        }
