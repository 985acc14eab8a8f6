from sqlalchemy import Column, String, DateTime, Enum as SQLEnum, Integer, ForeignKey, Text
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.core.types import GUID, Money, generate_uuid, utcnow


class BookingStatus(str, enum.Enum):
    """Booking status"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    RESCHEDULED = "RESCHEDULED"


# Bookings that occupy a schedule slot
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class ExamBooking(Base):
    """A user's scheduled slot for an exam"""
    __tablename__ = "exam_bookings"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(GUID, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)

    scheduled_at = Column(DateTime, nullable=False)
    status = Column(SQLEnum(BookingStatus), default=BookingStatus.PENDING, nullable=False, index=True)

    attempts_allowed = Column(Integer, default=1, nullable=False)
    attempts_used = Column(Integer, default=0, nullable=False)

    total_amount = Column(Money, default=0, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)
    notes = Column(Text, nullable=True)

    created_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="bookings", foreign_keys=[user_id])
    exam = relationship("Exam", back_populates="bookings")
    attempts = relationship("ExamAttempt", back_populates="booking")
    payments = relationship("Payment", back_populates="booking")

    @property
    def attempts_remaining(self) -> int:
        return max((self.attempts_allowed or 0) - (self.attempts_used or 0), 0)

    def append_note(self, line: str) -> None:
        self.notes = f"{self.notes}\n{line}" if self.notes else line

    def __repr__(self):
        return f"<ExamBooking {self.id} {self.status.value if self.status else ''}>"
