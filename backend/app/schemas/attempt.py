from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.models.attempt import AttemptStatus


class ResponseSubmit(BaseModel):
    question_id: str
    selected_options: List[str] = Field(default_factory=list)
    essay_answer: Optional[str] = Field(None, max_length=10000)
    time_spent: int = Field(0, ge=0, le=3600)

    @model_validator(mode="after")
    def require_answer(self):
        if not self.selected_options and not (self.essay_answer or "").strip():
            raise ValueError("Either selected_options or essay_answer is required")
        return self


class AttemptResponse(BaseModel):
    id: str
    user_id: str
    exam_id: str
    booking_id: Optional[str] = None
    status: AttemptStatus
    question_ids: List[str] = []
    started_at: datetime
    completed_at: Optional[datetime] = None
    time_spent: Optional[int] = None
    total_score: Optional[float] = None
    max_score: Optional[float] = None
    percentage: Optional[float] = None
    is_passed: Optional[bool] = None

    class Config:
        from_attributes = True


class ResponseOut(BaseModel):
    id: str
    question_id: str
    selected_options: List[str] = []
    essay_answer: Optional[str] = None
    is_correct: Optional[bool] = None
    marks_obtained: float
    time_spent: int
    scoring_details: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class CertificateResponse(BaseModel):
    id: str
    user_id: str
    exam_id: str
    attempt_id: str
    certificate_number: str
    percentage: float
    issued_at: datetime
    expires_at: Optional[datetime] = None
    is_valid: bool

    class Config:
        from_attributes = True
