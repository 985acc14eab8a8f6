from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.core.types import GUID, Money, generate_uuid, utcnow


class PaymentStatus(str, enum.Enum):
    """Payment status"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# No further processing once a payment reaches one of these
TERMINAL_PAYMENT_STATUSES = (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED, PaymentStatus.CANCELLED)


class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    PAYPAL = "PAYPAL"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"


class Payment(Base):
    """Payment recorded against a booking"""
    __tablename__ = "payments"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = Column(GUID, ForeignKey("exam_bookings.id", ondelete="SET NULL"), nullable=True, index=True)

    amount = Column(Money, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    status = Column(SQLEnum(PaymentStatus), default=PaymentStatus.PENDING, nullable=False, index=True)
    payment_method = Column(SQLEnum(PaymentMethod), nullable=False)

    transaction_id = Column(String(255), nullable=True, index=True)
    description = Column(Text, nullable=True)
    extra_metadata = Column(JSON, default=dict)

    processed_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    refund_amount = Column(Money, nullable=True)
    refund_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="payments")
    booking = relationship("ExamBooking", back_populates="payments")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYMENT_STATUSES

    def __repr__(self):
        return f"<Payment {self.id} {self.amount} {self.currency}>"
