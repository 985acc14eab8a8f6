from app.services.audit_service import AuditService
from app.services.user_service import UserService
from app.services.auth_service import AuthService
from app.services.category_service import CategoryService
from app.services.question_service import QuestionService
from app.services.exam_service import ExamService
from app.services.randomization_service import QuestionRandomizer
from app.services.essay_scoring_service import EssayScoringService, essay_scoring_service
from app.services.certificate_service import CertificateService

# Booking flow
from app.services.attempt_service import AttemptService
from app.services.booking_service import BookingService
from app.services.billing_service import BillingService
from app.services.payment_service import PaymentService

# Reporting
from app.services.analytics_service import AnalyticsService
from app.services.admin_service import AdminService

__all__ = [
    # Core services
    "AuditService",
    "UserService",
    "AuthService",
    "CategoryService",
    "QuestionService",
    "ExamService",
    "QuestionRandomizer",
    "EssayScoringService",
    "essay_scoring_service",
    "CertificateService",
    # Booking flow
    "AttemptService",
    "BookingService",
    "BillingService",
    "PaymentService",
    # Reporting
    "AnalyticsService",
    "AdminService",
]
