# Re-export all models for convenient imports
from app.models.user import User, UserRole, Gender
from app.models.session import UserSession
from app.models.audit_log import AuditLog
from app.models.exam_category import ExamCategory
from app.models.question import Question, QuestionOption, QuestionType, Difficulty
from app.models.exam import Exam
from app.models.booking import ExamBooking, BookingStatus
from app.models.attempt import ExamAttempt, QuestionResponse, AttemptStatus
from app.models.payment import Payment, PaymentStatus, PaymentMethod
from app.models.certificate import Certificate

__all__ = [
    # User
    "User",
    "UserRole",
    "Gender",
    "UserSession",
    # Admin
    "AuditLog",
    # Question bank
    "ExamCategory",
    "Question",
    "QuestionOption",
    "QuestionType",
    "Difficulty",
    # Exams
    "Exam",
    "ExamBooking",
    "BookingStatus",
    "ExamAttempt",
    "QuestionResponse",
    "AttemptStatus",
    "Certificate",
    # Billing
    "Payment",
    "PaymentStatus",
    "PaymentMethod",
]
