# Pydantic schemas
from app.schemas.common import success_response, paginated, PaginationMeta
from app.schemas.auth import (
    LoginRequest,
    RegisterRequest,
    UserResponse,
    LoginResponse,
)
from app.schemas.question import (
    QuestionCreate,
    QuestionUpdate,
    QuestionResponse,
    StudentQuestion,
)
from app.schemas.exam import ExamCreate, ExamUpdate, ExamResponse
from app.schemas.booking import BookingCreate, BookingUpdate, BookingResponse
from app.schemas.payment import PaymentCreate, PaymentProcess, PaymentRefund, PaymentResponse
from app.schemas.attempt import ResponseSubmit, AttemptResponse, CertificateResponse

__all__ = [
    "success_response",
    "paginated",
    "PaginationMeta",
    "LoginRequest",
    "RegisterRequest",
    "UserResponse",
    "LoginResponse",
    "QuestionCreate",
    "QuestionUpdate",
    "QuestionResponse",
    "StudentQuestion",
    "ExamCreate",
    "ExamUpdate",
    "ExamResponse",
    "BookingCreate",
    "BookingUpdate",
    "BookingResponse",
    "PaymentCreate",
    "PaymentProcess",
    "PaymentRefund",
    "PaymentResponse",
    "ResponseSubmit",
    "AttemptResponse",
    "CertificateResponse",
]
