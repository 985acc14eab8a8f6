"""
Custom Exceptions for MockExam
==============================

Services raise these instead of returning error tuples; the exception
handlers registered in app.main turn them into JSON responses of the form
{"success": false, "message": ..., "error": {...}}.

Usage:
    from app.core.exceptions import ExamNotFoundError, BusinessRuleError

    if not exam:
        raise ExamNotFoundError(exam_id)

    if booking.status == BookingStatus.CANCELLED:
        raise BusinessRuleError("Booking is already cancelled")
"""

from typing import Optional, Any, Dict


class MockExamError(Exception):
    """Base exception for all MockExam errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(MockExamError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class AccountLockedError(AuthenticationError):
    """Too many failed logins"""

    status_code = 423

    def __init__(self, locked_until: Optional[str] = None):
        super().__init__("Account is temporarily locked due to too many failed login attempts")
        self.code = "ACCOUNT_LOCKED"
        if locked_until:
            self.details["locked_until"] = locked_until


class AuthorizationError(MockExamError):
    """User not authorized for this action"""

    status_code = 403

    def __init__(self, message: str = "Access denied. Insufficient permissions."):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(MockExamError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Optional[str] = None):
        message = f"{resource_type} not found"
        super().__init__(
            message,
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class UserNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: Optional[str] = None):
        super().__init__("User", user_id)


class CategoryNotFoundError(ResourceNotFoundError):
    def __init__(self, category_id: Optional[str] = None):
        super().__init__("Exam category", category_id)


class QuestionNotFoundError(ResourceNotFoundError):
    def __init__(self, question_id: Optional[str] = None):
        super().__init__("Question", question_id)


class ExamNotFoundError(ResourceNotFoundError):
    def __init__(self, exam_id: Optional[str] = None):
        super().__init__("Exam", exam_id)


class BookingNotFoundError(ResourceNotFoundError):
    def __init__(self, booking_id: Optional[str] = None):
        super().__init__("Booking", booking_id)


class AttemptNotFoundError(ResourceNotFoundError):
    def __init__(self, attempt_id: Optional[str] = None):
        super().__init__("Exam attempt", attempt_id)


class PaymentNotFoundError(ResourceNotFoundError):
    def __init__(self, payment_id: Optional[str] = None):
        super().__init__("Payment", payment_id)


class CertificateNotFoundError(ResourceNotFoundError):
    def __init__(self, certificate_id: Optional[str] = None):
        super().__init__("Certificate", certificate_id)


# ============================================
# Validation / Business Rule Errors (400-type)
# ============================================

class ValidationError(MockExamError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class BusinessRuleError(MockExamError):
    """A state transition or domain rule forbids the operation"""

    status_code = 400

    def __init__(self, message: str, code: str = "BUSINESS_RULE_VIOLATION", **details: Any):
        super().__init__(message, code=code, details=details)


class ConflictError(MockExamError):
    """Duplicate resource or overlapping schedule"""

    status_code = 409

    def __init__(self, message: str, **details: Any):
        super().__init__(message, code="CONFLICT", details=details)


# ============================================
# Payment Errors
# ============================================

class PaymentError(MockExamError):
    """Payment operation failed"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="PAYMENT_ERROR")


# ============================================
# Document Generation Errors
# ============================================

class DocumentGenerationError(MockExamError):
    """PDF generation failed"""

    def __init__(self, message: str, doc_type: Optional[str] = None):
        super().__init__(message, code="DOCUMENT_GENERATION_FAILED")
        if doc_type:
            self.details["doc_type"] = doc_type


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: MockExamError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "message": error.message,
        "error": error.to_dict()
    }
