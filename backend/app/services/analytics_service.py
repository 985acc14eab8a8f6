"""
Analytics Service
Dashboard and reporting aggregates. Every figure is an independent query.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, case

from app.core.logging_config import logger
from app.core.types import utcnow
from app.models.attempt import ExamAttempt, QuestionResponse, AttemptStatus
from app.models.exam import Exam
from app.models.exam_category import ExamCategory
from app.models.payment import Payment, PaymentStatus
from app.models.question import Question, Difficulty
from app.models.user import User
from app.services.exam_service import ExamService


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _round(value: Any) -> float:
    return round(float(value), 2) if value is not None else 0.0


def month_starts(now: datetime, months: int) -> List[datetime]:
    """First day of each of the last `months` months, oldest first"""
    starts = []
    year, month = now.year, now.month
    for _ in range(months):
        starts.append(datetime(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def score_distribution(percentages: List[float]) -> List[Dict[str, Any]]:
    """Counts in 10% buckets; 100% falls in the last bucket"""
    buckets = [0] * 10
    for value in percentages:
        buckets[min(int((value or 0) // 10), 9)] += 1
    return [
        {"range": f"{i * 10}-{i * 10 + 10}", "count": count}
        for i, count in enumerate(buckets)
    ]


class AnalyticsService:
    """Aggregations for dashboards"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _range(self, column, start_date: Optional[datetime], end_date: Optional[datetime]) -> list:
        filters = []
        if start_date:
            filters.append(column >= start_date)
        if end_date:
            filters.append(column <= end_date)
        return filters

    async def _count(self, column, *filters) -> int:
        return await self.db.scalar(select(func.count(column)).where(*filters)) or 0

    async def _revenue(self, *filters) -> float:
        completed = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.status == PaymentStatus.COMPLETED, *filters
            )
        )
        refunds = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.refund_amount), 0)).where(
                Payment.status == PaymentStatus.REFUNDED, *filters
            )
        )
        refunded_originals = await self.db.scalar(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.status == PaymentStatus.REFUNDED, *filters
            )
        )
        # Refunded rows keep their original amount; only the refunded part is lost
        return _round(float(completed or 0) + float(refunded_originals or 0) - float(refunds or 0))

    # ==================== Dashboard ====================

    async def dashboard_statistics(self) -> Dict[str, Any]:
        now = utcnow()

        overview = {
            "totalUsers": await self._count(User.id),
            "totalExams": await self._count(Exam.id),
            "totalQuestions": await self._count(Question.id),
            "totalAttempts": await self._count(ExamAttempt.id),
            "totalRevenue": await self._revenue(),
        }

        recent_users = (await self.db.execute(
            select(User).order_by(User.created_at.desc()).limit(5)
        )).scalars().all()
        recent_exams = (await self.db.execute(
            select(Exam).order_by(Exam.created_at.desc()).limit(5)
        )).scalars().all()
        recent_attempts = (await self.db.execute(
            select(ExamAttempt, User.email, Exam.title)
            .join(User, ExamAttempt.user_id == User.id)
            .join(Exam, ExamAttempt.exam_id == Exam.id)
            .order_by(ExamAttempt.started_at.desc())
            .limit(5)
        )).all()

        user_growth = []
        starts = month_starts(now, 6)
        for index, start in enumerate(starts):
            end = starts[index + 1] if index + 1 < len(starts) else now + timedelta(seconds=1)
            user_growth.append({
                "month": start.strftime("%Y-%m"),
                "count": await self._count(User.id, User.created_at >= start, User.created_at < end),
            })

        return {
            "overview": overview,
            "recent": {
                "users": [
                    {"id": u.id, "email": u.email, "name": u.full_name, "role": u.role.value,
                     "created_at": u.created_at.isoformat()}
                    for u in recent_users
                ],
                "exams": [
                    {"id": e.id, "title": e.title, "is_active": e.is_active,
                     "created_at": e.created_at.isoformat()}
                    for e in recent_exams
                ],
                "attempts": [
                    {"id": a.id, "user_email": email, "exam_title": title, "status": a.status.value,
                     "percentage": a.percentage, "started_at": a.started_at.isoformat()}
                    for a, email, title in recent_attempts
                ],
            },
            "analytics": {
                "userGrowth": user_growth,
                "examPerformance": await self._exam_performance(),
                "categoryStats": await self.category_analytics(),
            },
        }

    async def _exam_performance(self, *filters) -> Dict[str, Any]:
        total = await self._count(ExamAttempt.id, *filters)
        completed = await self._count(ExamAttempt.id, ExamAttempt.status == AttemptStatus.COMPLETED, *filters)
        passed = await self._count(
            ExamAttempt.id,
            ExamAttempt.status == AttemptStatus.COMPLETED,
            ExamAttempt.is_passed.is_(True),
            *filters,
        )
        average = await self.db.scalar(
            select(func.avg(ExamAttempt.percentage)).where(
                ExamAttempt.status == AttemptStatus.COMPLETED, *filters
            )
        )
        return {
            "total": total,
            "completed": completed,
            "passed": passed,
            "passRate": _rate(passed, completed),
            "averageScore": _round(average),
        }

    # ==================== System ====================

    async def system_analytics(
        self, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        started = utcnow()
        month_ago = started - timedelta(days=30)
        attempt_range = self._range(ExamAttempt.started_at, start_date, end_date)
        payment_range = self._range(Payment.created_at, start_date, end_date)

        total_users = await self._count(User.id)
        by_role = (await self.db.execute(
            select(User.role, func.count(User.id)).group_by(User.role)
        )).all()
        users = {
            "total": total_users,
            "active": await self._count(User.id, User.last_login_at >= month_ago),
            "new": await self._count(User.id, User.created_at >= month_ago),
            "byRole": {role.value: count for role, count in by_role},
            "verificationRate": _rate(await self._count(User.id, User.is_email_verified.is_(True)), total_users),
            "activationRate": _rate(await self._count(User.id, User.is_active.is_(True)), total_users),
        }

        performance = await self._exam_performance(*attempt_range)
        average_time = await self.db.scalar(
            select(func.avg(ExamAttempt.time_spent)).where(
                ExamAttempt.status == AttemptStatus.COMPLETED, *attempt_range
            )
        )
        exams_by_category = (await self.db.execute(
            select(ExamCategory.name, func.count(Exam.id))
            .join(Exam, Exam.exam_category_id == ExamCategory.id)
            .group_by(ExamCategory.name)
        )).all()
        exams = {
            "total": await self._count(Exam.id),
            "active": await self._count(Exam.id, Exam.is_active.is_(True)),
            "attempts": performance["total"],
            "completed": performance["completed"],
            "passed": performance["passed"],
            "passRate": performance["passRate"],
            "averageScore": performance["averageScore"],
            "averageTime": _round(average_time),
            "examsByCategory": {name: count for name, count in exams_by_category},
        }

        total_payments = await self._count(Payment.id, *payment_range)
        successful = await self._count(Payment.id, Payment.status == PaymentStatus.COMPLETED, *payment_range)
        failed = await self._count(Payment.id, Payment.status == PaymentStatus.FAILED, *payment_range)
        average_payment = await self.db.scalar(
            select(func.avg(Payment.amount)).where(Payment.status == PaymentStatus.COMPLETED, *payment_range)
        )
        methods = (await self.db.execute(
            select(Payment.payment_method, func.count(Payment.id))
            .where(*payment_range)
            .group_by(Payment.payment_method)
        )).all()
        revenue = {
            "total": await self._revenue(*payment_range),
            "successfulPayments": successful,
            "failedPayments": failed,
            "successRate": _rate(successful, total_payments),
            "averagePayment": _round(average_payment),
            "paymentMethods": {method.value: count for method, count in methods},
        }

        time_row = (await self.db.execute(
            select(
                func.avg(ExamAttempt.time_spent),
                func.min(ExamAttempt.time_spent),
                func.max(ExamAttempt.time_spent),
            ).where(ExamAttempt.status == AttemptStatus.COMPLETED, *attempt_range)
        )).one()

        result = {
            "users": users,
            "exams": exams,
            "revenue": revenue,
            "performance": {
                "timeAnalysis": {
                    "average": _round(time_row[0]),
                    "min": time_row[1] or 0,
                    "max": time_row[2] or 0,
                },
                "difficultyAnalysis": await self.difficulty_analysis(),
                "questionAnalysis": await self.question_analysis(),
            },
        }
        logger.log_performance("system_analytics", (utcnow() - started).total_seconds() * 1000)
        return result

    # ==================== Breakdowns ====================

    async def category_analytics(self) -> List[Dict[str, Any]]:
        categories = (await self.db.execute(
            select(ExamCategory).order_by(ExamCategory.sort_order, ExamCategory.name)
        )).scalars().all()

        stats = []
        for category in categories:
            in_category = ExamAttempt.exam_id.in_(
                select(Exam.id).where(Exam.exam_category_id == category.id)
            )
            completed = ExamAttempt.status == AttemptStatus.COMPLETED
            total_attempts = await self._count(ExamAttempt.id, in_category)
            completed_attempts = await self._count(ExamAttempt.id, in_category, completed)
            passed = await self._count(ExamAttempt.id, in_category, completed, ExamAttempt.is_passed.is_(True))
            average = await self.db.scalar(
                select(func.avg(ExamAttempt.percentage)).where(in_category, completed)
            )
            stats.append({
                "id": category.id,
                "name": category.name,
                "examCount": await self._count(Exam.id, Exam.exam_category_id == category.id),
                "questionCount": await self._count(Question.id, Question.exam_category_id == category.id),
                "totalAttempts": total_attempts,
                "passedAttempts": passed,
                "passRate": _rate(passed, completed_attempts),
                "averageScore": _round(average),
            })
        return stats

    async def difficulty_analysis(self) -> List[Dict[str, Any]]:
        rows = (await self.db.execute(
            select(
                Question.difficulty,
                func.count(QuestionResponse.id),
                func.avg(QuestionResponse.time_spent),
                func.avg(QuestionResponse.marks_obtained),
            )
            .join(Question, QuestionResponse.question_id == Question.id)
            .group_by(Question.difficulty)
        )).all()
        by_difficulty = {difficulty: (count, time, marks) for difficulty, count, time, marks in rows}
        return [
            {
                "difficulty": difficulty.value,
                "responses": by_difficulty.get(difficulty, (0, None, None))[0],
                "averageTime": _round(by_difficulty.get(difficulty, (0, None, None))[1]),
                "averageMarks": _round(by_difficulty.get(difficulty, (0, None, None))[2]),
            }
            for difficulty in Difficulty
        ]

    async def question_analysis(self, limit: int = 10) -> List[Dict[str, Any]]:
        responses = func.count(QuestionResponse.id).label("responses")
        rows = (await self.db.execute(
            select(
                Question.id,
                Question.text,
                Question.difficulty,
                responses,
                func.sum(case((QuestionResponse.is_correct.is_(True), 1), else_=0)),
            )
            .join(QuestionResponse, QuestionResponse.question_id == Question.id)
            .group_by(Question.id, Question.text, Question.difficulty)
            .order_by(responses.desc())
            .limit(limit)
        )).all()
        return [
            {
                "id": question_id,
                "text": text[:100],
                "difficulty": difficulty.value,
                "responses": count,
                "correct": int(correct or 0),
                "accuracy": _rate(int(correct or 0), count),
            }
            for question_id, text, difficulty, count, correct in rows
        ]

    async def realtime_analytics(self) -> Dict[str, Any]:
        now = utcnow()
        hour_ago = now - timedelta(hours=1)
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return {
            "activeUsers": await self._count(User.id, User.last_login_at >= hour_ago),
            "recentAttempts": await self._count(ExamAttempt.id, ExamAttempt.started_at >= hour_ago),
            "recentPayments": await self._count(Payment.id, Payment.created_at >= hour_ago),
            "attemptsToday": await self._count(ExamAttempt.id, ExamAttempt.started_at >= day_start),
            "attemptsInProgress": await self._count(
                ExamAttempt.id, ExamAttempt.status == AttemptStatus.IN_PROGRESS
            ),
            "timestamp": now.isoformat(),
        }

    async def exam_analytics(
        self, exam_id: str, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        exam = await ExamService(self.db).get_exam(exam_id)
        filters = [ExamAttempt.exam_id == exam.id, *self._range(ExamAttempt.started_at, start_date, end_date)]

        completed = (await self.db.execute(
            select(ExamAttempt.percentage, ExamAttempt.time_spent, ExamAttempt.is_passed).where(
                and_(*filters, ExamAttempt.status == AttemptStatus.COMPLETED)
            )
        )).all()
        percentages = [row[0] or 0.0 for row in completed]
        times = [row[1] or 0 for row in completed]
        passed = sum(1 for row in completed if row[2])

        return {
            "exam": {"id": exam.id, "title": exam.title, "passing_marks": exam.passing_marks},
            "attempts": await self._count(ExamAttempt.id, *filters),
            "completed": len(completed),
            "passed": passed,
            "passRate": _rate(passed, len(completed)),
            "averageScore": _round(sum(percentages) / len(percentages)) if percentages else 0.0,
            "averageTime": _round(sum(times) / len(times)) if times else 0.0,
            "scoreDistribution": score_distribution(percentages),
        }
