from sqlalchemy import (
    Column, DateTime, Enum as SQLEnum, Integer, Float, Boolean, ForeignKey, JSON, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"
    TIMED_OUT = "TIMED_OUT"


class ExamAttempt(Base):
    """One sitting of an exam by a user"""
    __tablename__ = "exam_attempts"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(GUID, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = Column(GUID, ForeignKey("exam_bookings.id", ondelete="SET NULL"), nullable=True, index=True)

    status = Column(SQLEnum(AttemptStatus), default=AttemptStatus.IN_PROGRESS, nullable=False, index=True)
    question_ids = Column(JSON, default=list)  # ordered selection for this attempt

    started_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    time_spent = Column(Integer, nullable=True)  # seconds

    # Results
    total_score = Column(Float, nullable=True)
    max_score = Column(Float, nullable=True)
    percentage = Column(Float, nullable=True)
    is_passed = Column(Boolean, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="attempts")
    exam = relationship("Exam", back_populates="attempts")
    booking = relationship("ExamBooking", back_populates="attempts")
    responses = relationship("QuestionResponse", back_populates="attempt", cascade="all, delete-orphan")
    certificate = relationship("Certificate", back_populates="attempt", uselist=False)

    def __repr__(self):
        return f"<ExamAttempt {self.id} {self.status.value if self.status else ''}>"


class QuestionResponse(Base):
    """A user's answer to one question of an attempt"""
    __tablename__ = "question_responses"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_response_attempt_question"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    attempt_id = Column(GUID, ForeignKey("exam_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(GUID, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)

    selected_options = Column(JSON, default=list)  # option ids
    essay_answer = Column(Text, nullable=True)

    is_correct = Column(Boolean, nullable=True)
    marks_obtained = Column(Float, default=0.0, nullable=False)
    time_spent = Column(Integer, default=0, nullable=False)  # seconds
    scoring_details = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    attempt = relationship("ExamAttempt", back_populates="responses")
    question = relationship("Question", back_populates="responses")

    def __repr__(self):
        return f"<QuestionResponse {self.attempt_id}/{self.question_id}>"
