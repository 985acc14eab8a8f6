from sqlalchemy import Column, String, Boolean, DateTime, Integer, Text, ForeignKey, JSON, Enum as SQLEnum
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    SINGLE_CHOICE = "SINGLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    FILL_IN_THE_BLANK = "FILL_IN_THE_BLANK"
    SHORT_ANSWER = "SHORT_ANSWER"
    ESSAY = "ESSAY"
    MATCHING = "MATCHING"
    ORDERING = "ORDERING"
    ACCOUNTING_TABLE = "ACCOUNTING_TABLE"
    COMPOUND_CHOICE = "COMPOUND_CHOICE"


# Types answered by picking options
CHOICE_TYPES = frozenset({
    QuestionType.MULTIPLE_CHOICE,
    QuestionType.SINGLE_CHOICE,
    QuestionType.TRUE_FALSE,
    QuestionType.ACCOUNTING_TABLE,
    QuestionType.COMPOUND_CHOICE,
})

# Types answered with text and graded against correct_answer
TEXT_TYPES = frozenset(set(QuestionType) - CHOICE_TYPES)

# Choice types with exactly one correct option
SINGLE_ANSWER_TYPES = frozenset({QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE})


class Difficulty(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"
    EXPERT = "EXPERT"


class Question(Base):
    """Question bank entry"""
    __tablename__ = "questions"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    exam_category_id = Column(GUID, ForeignKey("exam_categories.id"), nullable=False, index=True)

    text = Column(Text, nullable=False)
    type = Column(SQLEnum(QuestionType), nullable=False, index=True)
    difficulty = Column(SQLEnum(Difficulty), default=Difficulty.MEDIUM, nullable=False)
    marks = Column(Integer, default=1, nullable=False)
    time_limit = Column(Integer, nullable=True)  # seconds

    explanation = Column(Text, nullable=True)
    correct_answer = Column(Text, nullable=True)  # model answer / accepted answers separated by |
    tags = Column(JSON, default=list)
    images = Column(JSON, default=list)

    usage_count = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    category = relationship("ExamCategory", back_populates="questions")
    options = relationship(
        "QuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionOption.sort_order",
    )
    responses = relationship("QuestionResponse", back_populates="question")

    @property
    def is_choice(self) -> bool:
        return self.type in CHOICE_TYPES

    def __repr__(self):
        return f"<Question {self.id} {self.type.value if self.type else ''}>"


class QuestionOption(Base):
    """Answer option of a choice question"""
    __tablename__ = "question_options"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    question_id = Column(GUID, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    is_correct = Column(Boolean, default=False, nullable=False)
    explanation = Column(Text, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)

    question = relationship("Question", back_populates="options")

    def __repr__(self):
        return f"<QuestionOption {self.id} correct={self.is_correct}>"
