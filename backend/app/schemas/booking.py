from pydantic import BaseModel, Field, field_validator
from typing import Optional, Literal
from datetime import datetime

from app.core.types import to_naive_utc
from app.models.booking import BookingStatus


class BookingCreate(BaseModel):
    exam_id: str
    scheduled_at: datetime
    attempts_allowed: int = Field(1, ge=1, le=10)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, v):
        return to_naive_utc(v)


class AdminBookingCreate(BookingCreate):
    user_id: str


class BookingUpdate(BaseModel):
    scheduled_at: Optional[datetime] = None
    attempts_allowed: Optional[int] = Field(None, ge=1, le=10)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("scheduled_at")
    @classmethod
    def normalize_scheduled_at(cls, v):
        return to_naive_utc(v)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class BookingStatusUpdate(BaseModel):
    status: Literal["CONFIRMED", "CANCELLED", "RESCHEDULED"]
    notes: Optional[str] = Field(None, max_length=1000)


class BookingResponse(BaseModel):
    id: str
    user_id: str
    exam_id: str
    scheduled_at: datetime
    status: BookingStatus
    attempts_allowed: int
    attempts_used: int
    total_amount: float
    currency: str
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
