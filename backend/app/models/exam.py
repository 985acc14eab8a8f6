from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.types import GUID, Money, generate_uuid, utcnow


class Exam(Base):
    """Bookable exam definition"""
    __tablename__ = "exams"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    exam_category_id = Column(GUID, ForeignKey("exam_categories.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    instructions = Column(Text, nullable=True)

    duration = Column(Integer, nullable=False)  # minutes
    total_marks = Column(Integer, nullable=False)
    passing_marks = Column(Float, default=50.0, nullable=False)  # percentage

    price = Column(Money, default=0, nullable=False)
    currency = Column(String(3), default="USD", nullable=False)

    # Visibility / lifecycle
    is_active = Column(Boolean, default=True, nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    is_approved = Column(Boolean, default=False, nullable=False)
    approved_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime, nullable=True)

    # Retake policy
    allow_retakes = Column(Boolean, default=False, nullable=False)
    max_retakes = Column(Integer, default=0, nullable=False)

    # Question selection
    total_questions = Column(Integer, nullable=True)
    question_type_counts = Column(JSON, default=dict)  # {"ESSAY": 2, "MULTIPLE_CHOICE": 10}
    question_overlap_percentage = Column(Float, default=10.0, nullable=False)

    # Booking window
    scheduled_start = Column(DateTime, nullable=True)
    scheduled_end = Column(DateTime, nullable=True)

    created_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    category = relationship("ExamCategory", back_populates="exams")
    bookings = relationship("ExamBooking", back_populates="exam", cascade="all, delete-orphan")
    attempts = relationship("ExamAttempt", back_populates="exam")

    @property
    def max_attempts(self) -> int:
        """First sitting plus permitted retakes"""
        return 1 + (self.max_retakes or 0) if self.allow_retakes else 1

    def window_contains(self, moment) -> bool:
        if self.scheduled_start and moment < self.scheduled_start:
            return False
        if self.scheduled_end and moment > self.scheduled_end:
            return False
        return True

    def __repr__(self):
        return f"<Exam {self.title}>"
