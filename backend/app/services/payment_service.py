"""
Payment Service

Records payments against bookings. No gateway is charged: processing
stores the outcome reported by the caller and moves the booking along.
"""

from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.core.exceptions import (
    AuthorizationError, BookingNotFoundError, BusinessRuleError, ConflictError,
    PaymentError, PaymentNotFoundError
)
from app.core.logging_config import logger
from app.core.permissions import is_admin
from app.core.types import utcnow
from app.models.booking import ExamBooking, BookingStatus
from app.models.payment import Payment, PaymentStatus, PaymentMethod
from app.models.user import User
from app.schemas.payment import PaymentCreate, PaymentProcess, PaymentRefund, PaymentResponse
from app.services.audit_service import AuditService
from app.services.billing_service import BillingService
from app.services.booking_service import BookingService


def serialize_payment(payment: Payment) -> Dict[str, Any]:
    return PaymentResponse.model_validate(payment).model_dump()


class PaymentService:
    """Service for payments"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.audit = AuditService(db, request)

    async def get_payment(self, payment_id: str) -> Payment:
        result = await self.db.execute(select(Payment).where(Payment.id == payment_id))
        payment = result.scalar_one_or_none()
        if not payment:
            raise PaymentNotFoundError(payment_id)
        return payment

    async def get_for_user(self, payment_id: str, user: User) -> Payment:
        payment = await self.get_payment(payment_id)
        if payment.user_id != user.id and not is_admin(user.role):
            raise AuthorizationError("You can only access your own payments")
        return payment

    async def _completed_payment(self, booking_id: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.booking_id == booking_id, Payment.status == PaymentStatus.COMPLETED)
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ==================== Create / process ====================

    async def create_payment(self, data: PaymentCreate, user: User) -> Payment:
        if data.booking_id:
            booking = (await self.db.execute(
                select(ExamBooking).where(
                    ExamBooking.id == data.booking_id,
                    ExamBooking.user_id == user.id,
                )
            )).scalar_one_or_none()
            if not booking:
                raise BookingNotFoundError(data.booking_id)
            if await self._completed_payment(booking.id):
                raise ConflictError("Payment already completed for this booking", booking_id=booking.id)

        payment = Payment(
            user_id=user.id,
            booking_id=data.booking_id,
            amount=data.amount,
            currency=data.currency,
            payment_method=data.payment_method,
            description=data.description,
            status=PaymentStatus.PENDING,
            extra_metadata={},
        )
        self.db.add(payment)
        await self.db.flush()

        await self.audit.log(
            "PAYMENT_CREATED", "PAYMENT", payment.id, user.id,
            details={"amount": payment.amount, "currency": payment.currency, "booking_id": payment.booking_id},
        )
        await self.db.commit()
        return payment

    async def process_payment(self, payment_id: str, data: PaymentProcess, user: User) -> Payment:
        payment = await self.get_for_user(payment_id, user)
        if payment.is_terminal:
            raise PaymentError("Payment has already been processed")

        old_status = payment.status
        payment.status = data.status
        if data.transaction_id:
            payment.transaction_id = data.transaction_id
        if data.metadata:
            payment.extra_metadata = {**(payment.extra_metadata or {}), **data.metadata}
        payment.processed_at = utcnow()

        if data.status == PaymentStatus.COMPLETED and payment.booking_id:
            booking = (await self.db.execute(
                select(ExamBooking).where(ExamBooking.id == payment.booking_id)
            )).scalar_one_or_none()
            if booking and booking.status == BookingStatus.PENDING:
                booking.status = BookingStatus.CONFIRMED

        await self.audit.log(
            "PAYMENT_PROCESSED", "PAYMENT", payment.id, user.id,
            details={"old_status": old_status.value, "new_status": payment.status.value},
        )
        await self.db.commit()
        logger.info(f"[Payments] Payment {payment.id} {old_status.value} -> {payment.status.value}")
        return payment

    async def refund_payment(self, payment_id: str, data: PaymentRefund, actor: User) -> Payment:
        payment = await self.get_payment(payment_id)
        if payment.status != PaymentStatus.COMPLETED:
            raise PaymentError("Payment must be completed to be refunded")

        amount = data.amount if data.amount is not None else payment.amount
        if amount > payment.amount:
            raise PaymentError("Refund amount cannot exceed payment amount")

        payment.status = PaymentStatus.REFUNDED
        payment.refunded_at = utcnow()
        payment.refund_amount = amount
        payment.refund_reason = data.reason

        if payment.booking_id:
            booking = (await self.db.execute(
                select(ExamBooking).where(ExamBooking.id == payment.booking_id)
            )).scalar_one_or_none()
            if booking:
                booking.status = BookingStatus.CANCELLED

        await self.audit.log(
            "PAYMENT_REFUNDED", "PAYMENT", payment.id, actor.id,
            details={"amount": amount, "reason": data.reason},
        )
        await self.db.commit()
        logger.info(f"[Payments] Refunded {amount} on payment {payment.id}")
        return payment

    async def process_on_print(self, booking_id: str, user: User) -> Dict[str, Any]:
        """Record a cash payment when a bill is printed; returns {payment, bill, created}"""
        booking = await BookingService(self.db).get_booking(booking_id)
        if booking.user_id != user.id and not is_admin(user.role):
            raise AuthorizationError("You can only process payments for your own bookings")

        existing = await self._completed_payment(booking.id)
        if existing:
            bill = await BillingService(self.db).build_bill(booking)
            return {"payment": existing, "bill": bill, "created": False}

        if booking.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            raise BusinessRuleError("Cannot process payment for a cancelled or completed booking")

        now = utcnow()
        payment = Payment(
            user_id=booking.user_id,
            booking_id=booking.id,
            amount=booking.total_amount or 0,
            currency=booking.currency,
            payment_method=PaymentMethod.CASH,
            status=PaymentStatus.COMPLETED,
            description="Payment recorded on bill print",
            extra_metadata={"method": "BILL_PRINT", "processed_by": user.id},
            processed_at=now,
        )
        self.db.add(payment)
        if booking.status == BookingStatus.PENDING:
            booking.status = BookingStatus.CONFIRMED
        await self.db.flush()

        await self.audit.log(
            "PAYMENT_PROCESSED_ON_PRINT", "PAYMENT", payment.id, user.id,
            details={"booking_id": booking.id, "amount": payment.amount},
        )
        await self.db.commit()

        bill = await BillingService(self.db).build_bill(booking)
        return {"payment": payment, "bill": bill, "created": True}

    # ==================== Queries ====================

    async def history(self, user: User, page: int = 1, limit: int = 10) -> Tuple[List[Payment], int]:
        return await self._list([Payment.user_id == user.id], page, limit)

    async def list_all(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[PaymentStatus] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> Tuple[List[Payment], int]:
        filters = []
        if status:
            filters.append(Payment.status == status)
        if payment_method:
            filters.append(Payment.payment_method == payment_method)
        return await self._list(filters, page, limit)

    async def _list(self, filters: list, page: int, limit: int) -> Tuple[List[Payment], int]:
        total = (await self.db.execute(select(func.count(Payment.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(Payment).where(*filters)
            .order_by(Payment.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def stats(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        filters = []
        if start_date:
            filters.append(Payment.created_at >= start_date)
        if end_date:
            filters.append(Payment.created_at <= end_date)

        result = await self.db.execute(
            select(
                Payment.status,
                func.count(Payment.id),
                func.coalesce(func.sum(Payment.amount), 0),
                func.coalesce(func.sum(Payment.refund_amount), 0),
            ).where(*filters).group_by(Payment.status)
        )
        counts: Dict[PaymentStatus, int] = {}
        amounts: Dict[PaymentStatus, float] = {}
        refunded = 0.0
        for status, count, amount, refund in result.all():
            counts[status] = count
            amounts[status] = float(amount or 0)
            refunded += float(refund or 0)

        methods = await self.db.execute(
            select(Payment.payment_method, func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0))
            .where(*filters)
            .group_by(Payment.payment_method)
        )

        total = sum(counts.values())
        completed = counts.get(PaymentStatus.COMPLETED, 0)
        return {
            "overview": {
                "totalPayments": total,
                "totalRevenue": round(amounts.get(PaymentStatus.COMPLETED, 0.0), 2),
                "completedPayments": completed,
                "pendingPayments": counts.get(PaymentStatus.PENDING, 0),
                "failedPayments": counts.get(PaymentStatus.FAILED, 0),
                "refundedAmount": round(refunded, 2),
                "successRate": round(completed / total * 100, 2) if total else 0.0,
            },
            "paymentsByMethod": [
                {"method": method.value, "count": count, "amount": round(float(amount or 0), 2)}
                for method, count, amount in methods.all()
            ],
        }
