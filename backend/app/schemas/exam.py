from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, Dict
from datetime import datetime

from app.core.types import utcnow, to_naive_utc
from app.models.question import QuestionType


def check_type_counts(value: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
    if value is None:
        return value
    valid = {t.value for t in QuestionType}
    for key, count in value.items():
        if key not in valid:
            raise ValueError(f"Unknown question type: {key}")
        if count < 0:
            raise ValueError(f"Question count for {key} must be zero or more")
    return value


def check_price(value: Optional[float]) -> Optional[float]:
    if value is not None and round(value, 2) != value:
        raise ValueError("Price can have at most 2 decimal places")
    return value


def check_schedule(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start and start < utcnow():
        raise ValueError("Scheduled start cannot be in the past")
    if start and end and end < start:
        raise ValueError("Scheduled end must be after scheduled start")


class ExamCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    instructions: Optional[str] = Field(None, max_length=5000)
    exam_category_id: str
    duration: int = Field(..., ge=1, le=480)
    total_marks: int = Field(..., ge=1, le=1000)
    passing_marks: float = Field(..., ge=0, le=100)
    price: float = Field(0, ge=0, le=10000)
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$")
    is_active: bool = True
    is_public: bool = True
    allow_retakes: bool = False
    max_retakes: int = Field(0, ge=0, le=100000)
    question_overlap_percentage: float = Field(10, ge=0, le=100)
    total_questions: Optional[int] = Field(None, ge=1)
    question_type_counts: Dict[str, int] = Field(default_factory=dict)
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None

    @field_validator("scheduled_start", "scheduled_end")
    @classmethod
    def normalize_dates(cls, v):
        return to_naive_utc(v)

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        return check_price(v)

    @field_validator("question_type_counts")
    @classmethod
    def validate_type_counts(cls, v):
        return check_type_counts(v)

    @model_validator(mode="after")
    def validate_schedule(self):
        check_schedule(self.scheduled_start, self.scheduled_end)
        if self.total_questions is None:
            self.total_questions = sum(self.question_type_counts.values()) or None
        return self


class ExamUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    instructions: Optional[str] = Field(None, max_length=5000)
    exam_category_id: Optional[str] = None
    duration: Optional[int] = Field(None, ge=1, le=480)
    total_marks: Optional[int] = Field(None, ge=1, le=1000)
    passing_marks: Optional[float] = Field(None, ge=0, le=100)
    price: Optional[float] = Field(None, ge=0, le=10000)
    currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$")
    is_active: Optional[bool] = None
    is_public: Optional[bool] = None
    allow_retakes: Optional[bool] = None
    max_retakes: Optional[int] = Field(None, ge=0, le=100000)
    question_overlap_percentage: Optional[float] = Field(None, ge=0, le=100)
    total_questions: Optional[int] = Field(None, ge=1)
    question_type_counts: Optional[Dict[str, int]] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None

    @field_validator("scheduled_start", "scheduled_end")
    @classmethod
    def normalize_dates(cls, v):
        return to_naive_utc(v)

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        return check_price(v)

    @field_validator("question_type_counts")
    @classmethod
    def validate_type_counts(cls, v):
        return check_type_counts(v)

    @model_validator(mode="after")
    def validate_schedule(self):
        check_schedule(self.scheduled_start, self.scheduled_end)
        return self


class ExamApprove(BaseModel):
    is_approved: bool = True


class ExamResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    exam_category_id: str
    duration: int
    total_marks: int
    passing_marks: float
    price: float
    currency: str
    is_active: bool
    is_public: bool
    is_approved: bool
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    allow_retakes: bool
    max_retakes: int
    question_overlap_percentage: float
    total_questions: Optional[int] = None
    question_type_counts: Dict[str, int] = {}
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
