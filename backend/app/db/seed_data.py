"""
Database Seed Data Module

Staff and student accounts, exam categories, a small question bank and a free
sample exam. Safe to run repeatedly: existing rows are left untouched.

Run with: python -m app.db.seed_data
Clear with: python -m app.db.seed_data clear
"""
import asyncio
from typing import Dict, List

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal, init_db
from app.core.logging_config import logger
from app.core.security import get_password_hash
from app.core.types import utcnow
from app.models.user import User, UserRole
from app.models.exam_category import ExamCategory
from app.models.question import Question, QuestionOption, QuestionType, Difficulty
from app.models.exam import Exam


# ==================== Sample Data Constants ====================

DEFAULT_PASSWORD = "Password123!"

SAMPLE_USERS = [
    {"email": "superadmin@mockexam.local", "first_name": "Super", "last_name": "Admin", "role": UserRole.SUPER_ADMIN},
    {"email": "admin@mockexam.local", "first_name": "System", "last_name": "Admin", "role": UserRole.ADMIN},
    {"email": "moderator@mockexam.local", "first_name": "Question", "last_name": "Moderator", "role": UserRole.MODERATOR},
    {"email": "student@mockexam.local", "first_name": "Sample", "last_name": "Student", "role": UserRole.STUDENT},
]

SAMPLE_CATEGORIES = [
    {"name": "Accounting", "description": "Financial accounting and bookkeeping", "color": "#2563EB", "icon": "calculator"},
    {"name": "General Knowledge", "description": "Current affairs and general awareness", "color": "#16A34A", "icon": "globe"},
    {"name": "English", "description": "Grammar, comprehension and writing", "color": "#DB2777", "icon": "book"},
]

SAMPLE_QUESTIONS = {
    "Accounting": [
        {
            "text": "Which of the following is an asset?",
            "type": QuestionType.SINGLE_CHOICE,
            "difficulty": Difficulty.EASY,
            "options": [("Accounts receivable", True), ("Accounts payable", False), ("Share capital", False), ("Revenue", False)],
        },
        {
            "text": "The accounting equation is Assets = Liabilities + Equity.",
            "type": QuestionType.TRUE_FALSE,
            "difficulty": Difficulty.EASY,
            "options": [("True", True), ("False", False)],
        },
        {
            "text": "Select all items that appear on the balance sheet.",
            "type": QuestionType.MULTIPLE_CHOICE,
            "difficulty": Difficulty.MEDIUM,
            "marks": 2,
            "options": [("Inventory", True), ("Retained earnings", True), ("Cost of sales", False), ("Bank loan", True)],
        },
        {
            "text": "Name the financial statement that reports revenues and expenses for a period.",
            "type": QuestionType.SHORT_ANSWER,
            "difficulty": Difficulty.MEDIUM,
            "correct_answer": "income statement|profit and loss statement|profit and loss account",
        },
        {
            "text": "Explain the difference between accrual and cash basis accounting.",
            "type": QuestionType.ESSAY,
            "difficulty": Difficulty.HARD,
            "marks": 5,
            "correct_answer": (
                "Accrual accounting records revenue when it is earned and expenses when they are incurred, "
                "regardless of when cash changes hands. Cash basis accounting records revenue and expenses "
                "only when cash is received or paid."
            ),
        },
    ],
    "General Knowledge": [
        {
            "text": "Which planet is known as the Red Planet?",
            "type": QuestionType.SINGLE_CHOICE,
            "difficulty": Difficulty.EASY,
            "options": [("Mars", True), ("Venus", False), ("Jupiter", False), ("Mercury", False)],
        },
        {
            "text": "Water boils at ____ degrees Celsius at sea level.",
            "type": QuestionType.FILL_IN_THE_BLANK,
            "difficulty": Difficulty.EASY,
            "correct_answer": "100|one hundred",
        },
    ],
    "English": [
        {
            "text": "Choose the correctly spelled word.",
            "type": QuestionType.SINGLE_CHOICE,
            "difficulty": Difficulty.EASY,
            "options": [("Accommodate", True), ("Acommodate", False), ("Accomodate", False)],
        },
    ],
}

SAMPLE_EXAM = {
    "title": "Accounting Fundamentals Practice Test",
    "description": "A free practice test covering basic accounting concepts",
    "instructions": "Answer every question. Essay answers are scored automatically against a model answer.",
    "duration": 30,
    "passing_marks": 50.0,
    "price": 0,
    "currency": "USD",
    "is_active": True,
    "is_public": True,
    "allow_retakes": True,
    "max_retakes": 3,
}


# ==================== Seed Functions ====================

async def seed_users(db: AsyncSession) -> Dict[UserRole, User]:
    """Create one account per role"""
    users = {}
    created = 0
    hashed = get_password_hash(DEFAULT_PASSWORD)

    for user_data in SAMPLE_USERS:
        user = await db.scalar(select(User).where(User.email == user_data["email"]))
        if user is None:
            user = User(
                hashed_password=hashed,
                is_active=True,
                is_email_verified=True,
                **user_data
            )
            db.add(user)
            created += 1
        users[user_data["role"]] = user

    await db.flush()
    logger.info(f"[Seed] Users: {created} created, {len(SAMPLE_USERS) - created} existing")
    return users


async def seed_categories(db: AsyncSession) -> Dict[str, ExamCategory]:
    """Create exam categories"""
    categories = {}
    created = 0

    for index, category_data in enumerate(SAMPLE_CATEGORIES):
        category = await db.scalar(select(ExamCategory).where(ExamCategory.name == category_data["name"]))
        if category is None:
            category = ExamCategory(sort_order=index, **category_data)
            db.add(category)
            created += 1
        categories[category_data["name"]] = category

    await db.flush()
    logger.info(f"[Seed] Categories: {created} created")
    return categories


async def seed_questions(db: AsyncSession, categories: Dict[str, ExamCategory], author: User) -> List[Question]:
    """Create the sample question bank"""
    questions = []
    created = 0

    for category_name, items in SAMPLE_QUESTIONS.items():
        category = categories[category_name]
        for item in items:
            question = await db.scalar(
                select(Question).where(
                    Question.exam_category_id == category.id,
                    Question.text == item["text"],
                )
            )
            if question is None:
                question = Question(
                    exam_category_id=category.id,
                    text=item["text"],
                    type=item["type"],
                    difficulty=item["difficulty"],
                    marks=item.get("marks", 1),
                    correct_answer=item.get("correct_answer"),
                    tags=[category_name.lower()],
                    images=[],
                    created_by=author.id,
                )
                question.options = [
                    QuestionOption(text=option_text, is_correct=is_correct, sort_order=position)
                    for position, (option_text, is_correct) in enumerate(item.get("options", []))
                ]
                db.add(question)
                created += 1
            questions.append(question)

    await db.flush()
    logger.info(f"[Seed] Questions: {created} created")
    return questions


async def seed_exam(db: AsyncSession, categories: Dict[str, ExamCategory], admin: User) -> Exam:
    """Create a free, approved sample exam over the accounting questions"""
    exam = await db.scalar(select(Exam).where(Exam.title == SAMPLE_EXAM["title"]))
    if exam is not None:
        logger.info("[Seed] Sample exam already exists")
        return exam

    items = SAMPLE_QUESTIONS["Accounting"]
    type_counts: Dict[str, int] = {}
    for item in items:
        type_counts[item["type"].value] = type_counts.get(item["type"].value, 0) + 1

    exam = Exam(
        exam_category_id=categories["Accounting"].id,
        total_marks=sum(item.get("marks", 1) for item in items),
        total_questions=len(items),
        question_type_counts=type_counts,
        is_approved=True,
        approved_by=admin.id,
        approved_at=utcnow(),
        created_by=admin.id,
        **SAMPLE_EXAM
    )
    db.add(exam)
    await db.flush()
    logger.info(f"[Seed] Sample exam created: {exam.title}")
    return exam


# ==================== Main Seed Function ====================

async def seed_all():
    """Seed all sample data"""
    logger.info("[Seed] Starting database seeding...")

    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            users = await seed_users(db)
            categories = await seed_categories(db)
            await seed_questions(db, categories, users[UserRole.MODERATOR])
            await seed_exam(db, categories, users[UserRole.ADMIN])

            await db.commit()
            logger.info("[Seed] Database seeding completed successfully")

        except Exception as e:
            await db.rollback()
            logger.error(f"[Seed] Error seeding database: {e}")
            raise


async def clear_all():
    """Clear all data from database"""
    logger.info("[Seed] Clearing all data...")
    async with AsyncSessionLocal() as db:
        # Delete in reverse order of dependencies
        for table in (
            "certificates",
            "question_responses",
            "exam_attempts",
            "payments",
            "exam_bookings",
            "exams",
            "question_options",
            "questions",
            "exam_categories",
            "audit_logs",
            "user_sessions",
            "users",
        ):
            await db.execute(text(f"DELETE FROM {table}"))
        await db.commit()
        logger.info("[Seed] All data cleared")


def main():
    import sys

    if len(sys.argv) > 1 and sys.argv[1] == "clear":
        asyncio.run(clear_all())
    else:
        asyncio.run(seed_all())


if __name__ == "__main__":
    main()
