from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Sequence, Dict, Any
from datetime import datetime

from app.models.question import (
    QuestionType, Difficulty, CHOICE_TYPES, SINGLE_ANSWER_TYPES
)

# Text types that must state the expected answer
ANSWER_REQUIRED_TYPES = frozenset({
    QuestionType.ESSAY,
    QuestionType.SHORT_ANSWER,
    QuestionType.FILL_IN_THE_BLANK,
    QuestionType.MATCHING,
    QuestionType.ORDERING,
})


class OptionCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)
    is_correct: bool = False
    explanation: Optional[str] = Field(None, max_length=1000)
    sort_order: int = Field(0, ge=0)


def question_rule_violations(
    question_type: QuestionType,
    options: Sequence[OptionCreate],
    correct_answer: Optional[str],
) -> List[str]:
    """Structural rules tying a question type to its options and answer"""
    errors = []
    if question_type in CHOICE_TYPES:
        if not 2 <= len(options) <= 10:
            errors.append("Choice questions require between 2 and 10 options")
        correct = sum(1 for o in options if o.is_correct)
        if correct == 0:
            errors.append("At least one option must be marked as correct")
        if question_type in SINGLE_ANSWER_TYPES and correct > 1:
            errors.append(f"{question_type.value} questions must have exactly one correct option")
        if question_type == QuestionType.TRUE_FALSE and len(options) != 2:
            errors.append("TRUE_FALSE questions must have exactly two options")
    else:
        if options:
            errors.append(f"{question_type.value} questions must not have options")
        if question_type in ANSWER_REQUIRED_TYPES and not (correct_answer or "").strip():
            errors.append(f"{question_type.value} questions require a correct answer")
    return errors


class QuestionCreate(BaseModel):
    text: str = Field(..., min_length=10, max_length=2000)
    type: QuestionType
    difficulty: Difficulty = Difficulty.MEDIUM
    marks: int = Field(1, ge=1, le=100)
    time_limit: Optional[int] = Field(None, ge=10, le=3600)
    exam_category_id: str
    explanation: Optional[str] = Field(None, max_length=2000)
    correct_answer: Optional[str] = Field(None, max_length=10000)
    tags: List[str] = Field(default_factory=list, max_length=20)
    images: List[str] = Field(default_factory=list)
    is_active: bool = True
    options: List[OptionCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_type_rules(self):
        errors = question_rule_violations(self.type, self.options, self.correct_answer)
        if errors:
            raise ValueError("; ".join(errors))
        return self


class QuestionUpdate(BaseModel):
    text: Optional[str] = Field(None, min_length=10, max_length=2000)
    type: Optional[QuestionType] = None
    difficulty: Optional[Difficulty] = None
    marks: Optional[int] = Field(None, ge=1, le=100)
    time_limit: Optional[int] = Field(None, ge=10, le=3600)
    exam_category_id: Optional[str] = None
    explanation: Optional[str] = Field(None, max_length=2000)
    correct_answer: Optional[str] = Field(None, max_length=10000)
    tags: Optional[List[str]] = Field(None, max_length=20)
    images: Optional[List[str]] = None
    is_active: Optional[bool] = None
    options: Optional[List[OptionCreate]] = None


class BulkQuestionImport(BaseModel):
    # Items are validated one by one so a bad row is reported, not fatal
    questions: List[Dict[str, Any]] = Field(..., min_length=1, max_length=1000)


class EssayScoreRequest(BaseModel):
    student_answer: str = Field("", max_length=10000)
    model_answer: str = Field(..., max_length=10000)
    max_marks: float = Field(10, gt=0, le=100)


class OptionResponse(BaseModel):
    id: str
    text: str
    is_correct: bool
    explanation: Optional[str] = None
    sort_order: int

    class Config:
        from_attributes = True


class QuestionResponse(BaseModel):
    """Full question for staff"""
    id: str
    text: str
    type: QuestionType
    difficulty: Difficulty
    marks: int
    time_limit: Optional[int] = None
    exam_category_id: str
    explanation: Optional[str] = None
    correct_answer: Optional[str] = None
    tags: List[str] = []
    images: List[str] = []
    usage_count: int
    is_active: bool
    created_by: Optional[str] = None
    created_at: datetime
    options: List[OptionResponse] = []

    class Config:
        from_attributes = True


class StudentOption(BaseModel):
    id: str
    text: str
    sort_order: int

    class Config:
        from_attributes = True


class StudentQuestion(BaseModel):
    """Question as shown during an attempt, without answers"""
    id: str
    text: str
    type: QuestionType
    difficulty: Difficulty
    marks: int
    time_limit: Optional[int] = None
    images: List[str] = []
    options: List[StudentOption] = []

    class Config:
        from_attributes = True
