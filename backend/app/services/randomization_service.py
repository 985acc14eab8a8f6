"""
Question Randomization Service

Builds the question set for an exam attempt:
- per-type quotas from exam.question_type_counts, or a flat total
- weighted sampling without replacement; rarely used questions are favoured
- an overlap budget limiting how many questions a user sees again on a retake
"""

from typing import Callable, Dict, List, Optional, Sequence, Set, TypeVar
import math
import random

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.core.logging_config import logger
from app.models.exam import Exam
from app.models.question import Question
from app.models.attempt import ExamAttempt

T = TypeVar("T")

USAGE_DECAY_FACTOR = 0.03


def usage_weight(usage_count: Optional[int]) -> float:
    """Selection weight; drops as a question gets used more"""
    return 1.0 / (1.0 + (usage_count or 0) * USAGE_DECAY_FACTOR)


def weighted_pick(candidates: List[T], weight: Callable[[T], float], rng: random.Random) -> T:
    """Remove and return one candidate, chosen proportionally to weight"""
    weights = [weight(c) for c in candidates]
    threshold = rng.random() * sum(weights)
    cumulative = 0.0
    for index, w in enumerate(weights):
        cumulative += w
        if threshold < cumulative:
            return candidates.pop(index)
    return candidates.pop()


def weighted_sample(items: Sequence[T], k: int, weight: Callable[[T], float], rng: random.Random) -> List[T]:
    """k items without replacement"""
    pool = list(items)
    return [weighted_pick(pool, weight, rng) for _ in range(min(k, len(pool)))]


def overlap_budget(count: int, overlap_percentage: float) -> int:
    """How many previously seen questions a set of `count` may contain"""
    return math.floor(count * (overlap_percentage or 0) / 100)


def select_from_pool(
    pool: Sequence[Question],
    count: int,
    seen_ids: Set[str],
    seen_budget: int,
    rng: random.Random,
) -> List[Question]:
    """
    Pick `count` questions from pool.

    Seen questions compete with fresh ones until seen_budget is used up.
    When fresh questions run out the set is topped up from seen ones anyway,
    so the budget is a soft limit.
    """
    fresh = [q for q in pool if q.id not in seen_ids]
    seen = [q for q in pool if q.id in seen_ids]
    weight = lambda q: usage_weight(q.usage_count)  # noqa: E731

    selected: List[Question] = []
    seen_taken = 0
    while len(selected) < count and (fresh or (seen and seen_taken < seen_budget)):
        candidates = fresh + (seen if seen_taken < seen_budget else [])
        choice = weighted_pick(candidates, weight, rng)
        selected.append(choice)
        if choice.id in seen_ids:
            seen.remove(choice)
            seen_taken += 1
        else:
            fresh.remove(choice)

    shortfall = count - len(selected)
    if shortfall > 0 and seen:
        selected.extend(weighted_sample(seen, shortfall, weight, rng))

    return selected


class QuestionRandomizer:
    """Selects and records the questions for a new attempt"""

    def __init__(self, db: AsyncSession, rng: Optional[random.Random] = None):
        self.db = db
        self.rng = rng or random.Random()

    async def _pool(self, category_id: str) -> List[Question]:
        result = await self.db.execute(
            select(Question)
            .options(selectinload(Question.options))
            .where(
                Question.exam_category_id == category_id,
                Question.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def _seen_question_ids(self, exam_id: str, user_id: str) -> Set[str]:
        result = await self.db.execute(
            select(ExamAttempt.question_ids).where(
                ExamAttempt.exam_id == exam_id,
                ExamAttempt.user_id == user_id,
            )
        )
        seen: Set[str] = set()
        for question_ids in result.scalars().all():
            seen.update(question_ids or [])
        return seen

    async def generate(self, exam: Exam, user_id: str) -> List[Question]:
        pool = await self._pool(exam.exam_category_id)
        seen_ids = await self._seen_question_ids(exam.id, user_id)

        type_counts: Dict[str, int] = {
            k: v for k, v in (exam.question_type_counts or {}).items() if v and v > 0
        }

        if type_counts:
            requested = sum(type_counts.values())
            budget = overlap_budget(requested, exam.question_overlap_percentage)
            selected: List[Question] = []
            for type_name, count in type_counts.items():
                group = [q for q in pool if q.type.value == type_name]
                picked = select_from_pool(group, count, seen_ids, budget, self.rng)
                budget -= min(budget, sum(1 for q in picked if q.id in seen_ids))
                if len(picked) < count:
                    logger.warning(
                        f"[Randomizer] Exam {exam.id}: wanted {count} {type_name} questions, "
                        f"only {len(picked)} available"
                    )
                selected.extend(picked)
            self.rng.shuffle(selected)
        else:
            requested = exam.total_questions or len(pool)
            budget = overlap_budget(requested, exam.question_overlap_percentage)
            selected = select_from_pool(pool, requested, seen_ids, budget, self.rng)
            if len(selected) < requested:
                logger.warning(
                    f"[Randomizer] Exam {exam.id}: wanted {requested} questions, "
                    f"only {len(selected)} available"
                )

        for question in selected:
            question.usage_count = (question.usage_count or 0) + 1

        repeated = sum(1 for q in selected if q.id in seen_ids)
        logger.info(
            f"[Randomizer] Selected {len(selected)}/{requested} questions for exam {exam.id} "
            f"({repeated} previously seen)"
        )
        return selected
