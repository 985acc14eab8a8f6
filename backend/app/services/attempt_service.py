"""
Exam Attempt Service

Starting attempts (retake rules, question selection), saving responses,
time limits, grading on completion, results, history and leaderboards.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from datetime import timedelta
import random
import re

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload

from app.core.exceptions import (
    AttemptNotFoundError, AuthorizationError, BusinessRuleError, ValidationError
)
from app.core.logging_config import logger
from app.core.permissions import is_staff
from app.core.types import utcnow
from app.models.attempt import ExamAttempt, QuestionResponse, AttemptStatus
from app.models.booking import ExamBooking, BookingStatus
from app.models.certificate import Certificate
from app.models.exam import Exam
from app.models.question import Question, QuestionType, CHOICE_TYPES
from app.models.user import User
from app.schemas.attempt import AttemptResponse, ResponseOut, ResponseSubmit
from app.schemas.question import StudentQuestion
from app.services.audit_service import AuditService
from app.services.certificate_service import CertificateService
from app.services.essay_scoring_service import essay_scoring_service
from app.services.exam_service import ExamService
from app.services.randomization_service import QuestionRandomizer

_WHITESPACE = re.compile(r"\s+")


# ==================== Grading ====================

def normalize_answer(value: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace"""
    return _WHITESPACE.sub(" ", (value or "").strip().lower())


def grade_choice(question: Question, selected: Iterable[str]) -> Tuple[bool, float]:
    """Correct only when the selected set equals the correct set"""
    correct_ids = {o.id for o in question.options if o.is_correct}
    is_correct = bool(correct_ids) and set(selected or []) == correct_ids
    return is_correct, float(question.marks) if is_correct else 0.0


def grade_text(question: Question, answer: Optional[str]) -> Tuple[bool, float]:
    """Exact match, after normalization, against any |-separated accepted answer"""
    accepted = {normalize_answer(a) for a in (question.correct_answer or "").split("|")}
    accepted.discard("")
    is_correct = bool(answer) and normalize_answer(answer) in accepted
    return is_correct, float(question.marks) if is_correct else 0.0


def grade_response(question: Question, response: QuestionResponse) -> Dict[str, Any]:
    """Grade one response; returns is_correct, marks_obtained and scoring details"""
    if question.type in CHOICE_TYPES:
        is_correct, marks = grade_choice(question, response.selected_options)
        return {"is_correct": is_correct, "marks_obtained": marks, "scoring_details": None}

    if question.type == QuestionType.ESSAY:
        if not (question.correct_answer or "").strip():
            logger.warning(f"[Attempts] Essay question {question.id} has no model answer, scoring 0")
            return {"is_correct": False, "marks_obtained": 0.0, "scoring_details": None}
        result = essay_scoring_service.score_essay(
            response.essay_answer or "", question.correct_answer, float(question.marks)
        )
        return {
            "is_correct": result["is_passed"],
            "marks_obtained": result["total_score"],
            "scoring_details": result,
        }

    is_correct, marks = grade_text(question, response.essay_answer)
    return {"is_correct": is_correct, "marks_obtained": marks, "scoring_details": None}


def summarize_scores(
    questions: Sequence[Question], graded: Dict[str, float], passing_marks: float
) -> Dict[str, Any]:
    """Totals for an attempt; unanswered questions contribute 0"""
    total_score = round(sum(graded.get(q.id, 0.0) for q in questions), 2)
    max_score = float(sum(q.marks for q in questions))
    percentage = round(total_score / max_score * 100, 2) if max_score else 0.0
    return {
        "total_score": total_score,
        "max_score": max_score,
        "percentage": percentage,
        "is_passed": percentage >= passing_marks,
    }


class AttemptService:
    """Service for exam attempts"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None, rng: Optional[random.Random] = None):
        self.db = db
        self.audit = AuditService(db, request)
        self.rng = rng

    # ==================== Loading ====================

    async def _get_attempt(self, attempt_id: str) -> ExamAttempt:
        result = await self.db.execute(select(ExamAttempt).where(ExamAttempt.id == attempt_id))
        attempt = result.scalar_one_or_none()
        if not attempt:
            raise AttemptNotFoundError(attempt_id)
        return attempt

    async def _owned_attempt(self, attempt_id: str, user: User) -> ExamAttempt:
        attempt = await self._get_attempt(attempt_id)
        if attempt.user_id != user.id:
            raise AttemptNotFoundError(attempt_id)
        return attempt

    async def _questions(self, question_ids: Sequence[str]) -> List[Question]:
        """Questions in attempt order, options loaded"""
        if not question_ids:
            return []
        result = await self.db.execute(
            select(Question)
            .options(selectinload(Question.options))
            .where(Question.id.in_(list(question_ids)))
        )
        by_id = {q.id: q for q in result.scalars().all()}
        return [by_id[qid] for qid in question_ids if qid in by_id]

    async def _responses(self, attempt_id: str) -> Dict[str, QuestionResponse]:
        result = await self.db.execute(
            select(QuestionResponse).where(QuestionResponse.attempt_id == attempt_id)
        )
        return {r.question_id: r for r in result.scalars().all()}

    # ==================== Start ====================

    async def check_can_start(self, exam: Exam, user: User) -> None:
        if not exam.is_active:
            raise BusinessRuleError("Exam is not active")

        in_progress = (await self.db.execute(
            select(func.count(ExamAttempt.id)).where(
                ExamAttempt.exam_id == exam.id,
                ExamAttempt.user_id == user.id,
                ExamAttempt.status == AttemptStatus.IN_PROGRESS,
            )
        )).scalar() or 0
        if in_progress:
            raise BusinessRuleError("You already have an attempt in progress")

        completed = (await self.db.execute(
            select(func.count(ExamAttempt.id)).where(
                ExamAttempt.exam_id == exam.id,
                ExamAttempt.user_id == user.id,
                ExamAttempt.status == AttemptStatus.COMPLETED,
            )
        )).scalar() or 0
        if completed:
            if not exam.allow_retakes:
                raise BusinessRuleError("Retakes are not allowed for this exam")
            if completed > exam.max_retakes:
                raise BusinessRuleError("Maximum retakes reached")

    async def start_attempt(
        self, exam: Exam, user: User, booking: Optional[ExamBooking] = None
    ) -> Dict[str, Any]:
        """Create an IN_PROGRESS attempt with a fresh question selection"""
        await self.check_can_start(exam, user)

        questions = await QuestionRandomizer(self.db, self.rng).generate(exam, user.id)
        if not questions:
            raise BusinessRuleError("No questions available for this exam")

        attempt = ExamAttempt(
            user_id=user.id,
            exam_id=exam.id,
            booking_id=booking.id if booking else None,
            status=AttemptStatus.IN_PROGRESS,
            question_ids=[q.id for q in questions],
            started_at=utcnow(),
        )
        self.db.add(attempt)
        await self.db.flush()

        await self.audit.log(
            "EXAM_STARTED", "EXAM_ATTEMPT", attempt.id, user.id,
            details={"exam_id": exam.id, "booking_id": attempt.booking_id, "questions": len(questions)},
        )
        await self.db.commit()

        logger.info(f"[Attempts] User {user.id} started exam {exam.id} with {len(questions)} questions")
        return self._attempt_payload(attempt, exam, questions)

    async def start_direct(self, exam_id: str, user: User) -> Dict[str, Any]:
        """Start without a booking; only free exams allow this"""
        exam = await ExamService(self.db).get_exam(exam_id)
        if (exam.price or 0) > 0:
            raise BusinessRuleError("This exam requires a confirmed booking")
        return await self.start_attempt(exam, user)

    def _attempt_payload(self, attempt: ExamAttempt, exam: Exam, questions: Sequence[Question]) -> Dict[str, Any]:
        return {
            "attempt": AttemptResponse.model_validate(attempt).model_dump(),
            "exam": {
                "id": exam.id,
                "title": exam.title,
                "duration": exam.duration,
                "instructions": exam.instructions,
                "ends_at": (attempt.started_at + timedelta(minutes=exam.duration)).isoformat(),
            },
            "questions": [StudentQuestion.model_validate(q).model_dump() for q in questions],
        }

    # ==================== Responses ====================

    async def _expire_if_overdue(self, attempt: ExamAttempt, exam: Exam) -> None:
        if utcnow() > attempt.started_at + timedelta(minutes=exam.duration):
            attempt.status = AttemptStatus.TIMED_OUT
            await self.db.commit()
            logger.info(f"[Attempts] Attempt {attempt.id} timed out")
            raise BusinessRuleError("Exam time has expired", code="EXAM_TIMED_OUT")

    async def submit_response(self, attempt_id: str, user: User, data: ResponseSubmit) -> Dict[str, Any]:
        attempt = await self._owned_attempt(attempt_id, user)
        if attempt.status != AttemptStatus.IN_PROGRESS:
            raise BusinessRuleError("Exam attempt is not in progress")

        exam = await ExamService(self.db).get_exam(attempt.exam_id)
        await self._expire_if_overdue(attempt, exam)

        if data.question_id not in (attempt.question_ids or []):
            raise ValidationError("Question is not part of this attempt", field="question_id")

        questions = await self._questions([data.question_id])
        question = questions[0] if questions else None
        if question is None:
            raise ValidationError("Question is not part of this attempt", field="question_id")

        if data.selected_options:
            option_ids = {o.id for o in question.options}
            if not set(data.selected_options) <= option_ids:
                raise ValidationError("Invalid option selected", field="selected_options")

        responses = await self._responses(attempt.id)
        response = responses.get(question.id)
        if response is None:
            response = QuestionResponse(attempt_id=attempt.id, question_id=question.id)
            self.db.add(response)

        response.selected_options = list(data.selected_options)
        response.essay_answer = data.essay_answer
        response.time_spent = data.time_spent
        await self.db.flush()
        await self.db.commit()

        return ResponseOut.model_validate(response).model_dump()

    # ==================== Completion ====================

    async def complete_attempt(self, attempt_id: str, user: User) -> Dict[str, Any]:
        attempt = await self._owned_attempt(attempt_id, user)
        if attempt.status not in (AttemptStatus.IN_PROGRESS, AttemptStatus.TIMED_OUT):
            raise BusinessRuleError("Exam attempt has already been completed")

        exam = await ExamService(self.db).get_exam(attempt.exam_id)
        questions = await self._questions(attempt.question_ids or [])
        responses = await self._responses(attempt.id)

        graded: Dict[str, float] = {}
        for question in questions:
            response = responses.get(question.id)
            if response is None:
                continue
            outcome = grade_response(question, response)
            response.is_correct = outcome["is_correct"]
            response.marks_obtained = outcome["marks_obtained"]
            response.scoring_details = outcome["scoring_details"]
            graded[question.id] = outcome["marks_obtained"]

        summary = summarize_scores(questions, graded, exam.passing_marks)
        now = utcnow()
        attempt.total_score = summary["total_score"]
        attempt.max_score = summary["max_score"]
        attempt.percentage = summary["percentage"]
        attempt.is_passed = summary["is_passed"]
        attempt.status = AttemptStatus.COMPLETED
        attempt.completed_at = now
        attempt.time_spent = min(
            int((now - attempt.started_at).total_seconds()), exam.duration * 60
        )

        if attempt.booking_id:
            booking = (await self.db.execute(
                select(ExamBooking).where(ExamBooking.id == attempt.booking_id)
            )).scalar_one_or_none()
            if booking and booking.attempts_used >= booking.attempts_allowed:
                booking.status = BookingStatus.COMPLETED

        certificate = None
        if attempt.is_passed:
            certificate = await CertificateService(self.db).issue_for_attempt(attempt)

        await self.audit.log(
            "EXAM_COMPLETED", "EXAM_ATTEMPT", attempt.id, user.id,
            details={
                "exam_id": exam.id,
                "percentage": attempt.percentage,
                "is_passed": attempt.is_passed,
            },
        )
        await self.db.commit()

        logger.info(
            f"[Attempts] Attempt {attempt.id} completed: {attempt.total_score}/{attempt.max_score} "
            f"({attempt.percentage}%) passed={attempt.is_passed}"
        )
        return {
            "attempt": AttemptResponse.model_validate(attempt).model_dump(),
            "answered": len(graded),
            "total_questions": len(questions),
            "certificate": CertificateService.serialize(certificate) if certificate else None,
        }

    # ==================== Queries ====================

    async def get_attempt(self, attempt_id: str, user: User) -> Dict[str, Any]:
        attempt = await self._get_attempt(attempt_id)
        if attempt.user_id != user.id and not is_staff(user.role):
            raise AuthorizationError("You can only view your own attempts")

        exam = await ExamService(self.db).get_exam(attempt.exam_id)
        questions = await self._questions(attempt.question_ids or [])
        responses = await self._responses(attempt.id)
        payload = self._attempt_payload(attempt, exam, questions)
        payload["responses"] = [
            {
                "question_id": r.question_id,
                "selected_options": r.selected_options or [],
                "essay_answer": r.essay_answer,
                "time_spent": r.time_spent,
            }
            for r in responses.values()
        ]
        return payload

    async def get_results(self, attempt_id: str, user: User) -> Dict[str, Any]:
        """Per-question breakdown with answers; completed attempts only"""
        attempt = await self._get_attempt(attempt_id)
        if attempt.user_id != user.id and not is_staff(user.role):
            raise AuthorizationError("You can only view your own attempts")
        if attempt.status != AttemptStatus.COMPLETED:
            raise BusinessRuleError("Results are only available for completed attempts")

        exam = await ExamService(self.db).get_exam(attempt.exam_id)
        questions = await self._questions(attempt.question_ids or [])
        responses = await self._responses(attempt.id)

        breakdown = []
        for question in questions:
            response = responses.get(question.id)
            breakdown.append({
                "question_id": question.id,
                "text": question.text,
                "type": question.type.value,
                "marks": question.marks,
                "explanation": question.explanation,
                "correct_answer": question.correct_answer,
                "options": [
                    {
                        "id": o.id,
                        "text": o.text,
                        "is_correct": o.is_correct,
                        "explanation": o.explanation,
                    }
                    for o in question.options
                ],
                "response": ResponseOut.model_validate(response).model_dump() if response else None,
                "marks_obtained": response.marks_obtained if response else 0.0,
                "is_correct": bool(response and response.is_correct),
            })

        certificate = (await self.db.execute(
            select(Certificate).where(Certificate.attempt_id == attempt.id)
        )).scalar_one_or_none()

        return {
            "attempt": AttemptResponse.model_validate(attempt).model_dump(),
            "exam": {"id": exam.id, "title": exam.title, "passing_marks": exam.passing_marks},
            "questions": breakdown,
            "certificate": CertificateService.serialize(certificate) if certificate else None,
        }

    async def history(self, user: User, page: int = 1, limit: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        total = (await self.db.execute(
            select(func.count(ExamAttempt.id)).where(ExamAttempt.user_id == user.id)
        )).scalar() or 0
        result = await self.db.execute(
            select(ExamAttempt, Exam.title)
            .join(Exam, ExamAttempt.exam_id == Exam.id)
            .where(ExamAttempt.user_id == user.id)
            .order_by(ExamAttempt.started_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [
            {**AttemptResponse.model_validate(attempt).model_dump(), "exam_title": title}
            for attempt, title in result.all()
        ]
        return items, total

    async def upcoming(self, user: User) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(ExamBooking, Exam.title, Exam.duration)
            .join(Exam, ExamBooking.exam_id == Exam.id)
            .where(
                ExamBooking.user_id == user.id,
                ExamBooking.status == BookingStatus.CONFIRMED,
                ExamBooking.scheduled_at >= utcnow(),
            )
            .order_by(ExamBooking.scheduled_at)
        )
        return [
            {
                "booking_id": booking.id,
                "exam_id": booking.exam_id,
                "exam_title": title,
                "duration": duration,
                "scheduled_at": booking.scheduled_at.isoformat(),
                "attempts_remaining": booking.attempts_remaining,
            }
            for booking, title, duration in result.all()
        ]

    async def stats(self, user: User) -> Dict[str, Any]:
        result = await self.db.execute(select(ExamAttempt).where(ExamAttempt.user_id == user.id))
        attempts = list(result.scalars().all())
        completed = [a for a in attempts if a.status == AttemptStatus.COMPLETED]
        passed = [a for a in completed if a.is_passed]
        percentages = [a.percentage or 0.0 for a in completed]
        certificates = (await self.db.execute(
            select(func.count(Certificate.id)).where(Certificate.user_id == user.id)
        )).scalar() or 0

        return {
            "totalAttempts": len(attempts),
            "completedAttempts": len(completed),
            "passedAttempts": len(passed),
            "certificates": certificates,
            "passRate": round(len(passed) / len(completed) * 100, 2) if completed else 0.0,
            "averagePercentage": round(sum(percentages) / len(percentages), 2) if percentages else 0.0,
            "bestPercentage": max(percentages) if percentages else 0.0,
        }

    async def leaderboard(self, exam_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Best completed attempt per user"""
        await ExamService(self.db).get_exam(exam_id)
        result = await self.db.execute(
            select(ExamAttempt, User.first_name, User.last_name)
            .join(User, ExamAttempt.user_id == User.id)
            .where(
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.status == AttemptStatus.COMPLETED,
            )
        )

        best: Dict[str, Tuple[ExamAttempt, str]] = {}
        for attempt, first_name, last_name in result.all():
            current = best.get(attempt.user_id)
            key = (-(attempt.percentage or 0.0), attempt.time_spent or 0)
            if current is None or key < (-(current[0].percentage or 0.0), current[0].time_spent or 0):
                best[attempt.user_id] = (attempt, f"{first_name} {last_name}")

        ranked = sorted(
            best.values(),
            key=lambda item: (-(item[0].percentage or 0.0), item[0].time_spent or 0),
        )[:limit]
        return [
            {
                "rank": index + 1,
                "user_id": attempt.user_id,
                "name": name,
                "percentage": attempt.percentage,
                "total_score": attempt.total_score,
                "time_spent": attempt.time_spent,
                "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else None,
            }
            for index, (attempt, name) in enumerate(ranked)
        ]
