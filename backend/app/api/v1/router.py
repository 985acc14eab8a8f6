from fastapi import APIRouter
from app.api.v1.endpoints import auth, exam_categories, questions, exams, bookings, payments, billing, analytics
from app.api.v1.endpoints.admin import admin_router

api_router = APIRouter()


@api_router.get("/health", tags=["Health"])
async def health_check():
    """Simple health check endpoint for load balancer"""
    return {"status": "healthy", "service": "mockexam-backend"}


api_router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
api_router.include_router(exam_categories.router, prefix="/exam-categories", tags=["Exam Categories"])
api_router.include_router(questions.router, prefix="/questions", tags=["Questions"])
api_router.include_router(exams.router, prefix="/exams", tags=["Exams"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
api_router.include_router(billing.router, prefix="/billing", tags=["Billing"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])

# Admin routes
api_router.include_router(admin_router)
