"""
Admin API endpoints for the MockExam administration console.
Every endpoint requires a staff role; most require admin.
"""
from fastapi import APIRouter

from app.api.v1.endpoints.admin import dashboard, users, exam_categories, questions, exams, system

admin_router = APIRouter(prefix="/admin", tags=["Admin"])

# Include all admin sub-routers
admin_router.include_router(dashboard.router, prefix="/dashboard", tags=["Admin Dashboard"])
admin_router.include_router(users.router, prefix="/users", tags=["Admin Users"])
admin_router.include_router(exam_categories.router, prefix="/exam-categories", tags=["Admin Exam Categories"])
admin_router.include_router(questions.router, prefix="/questions", tags=["Admin Questions"])
admin_router.include_router(exams.router, prefix="/exams", tags=["Admin Exams"])
admin_router.include_router(system.router, prefix="/system", tags=["Admin System"])
