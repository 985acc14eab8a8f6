# API endpoints
from . import auth, exam_categories, questions, exams, bookings, payments, billing, analytics

__all__ = ["auth", "exam_categories", "questions", "exams", "bookings", "payments", "billing", "analytics"]
