from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime

from app.models.payment import PaymentStatus, PaymentMethod


class PaymentCreate(BaseModel):
    booking_id: Optional[str] = None
    amount: float = Field(..., gt=0, le=100000)
    currency: str = Field("USD", pattern=r"^[A-Z]{3}$")
    payment_method: PaymentMethod
    description: Optional[str] = Field(None, max_length=500)


class PaymentProcess(BaseModel):
    status: PaymentStatus
    transaction_id: Optional[str] = Field(None, max_length=255)
    metadata: Optional[Dict[str, Any]] = None


class PaymentRefund(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    reason: Optional[str] = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    id: str
    user_id: str
    booking_id: Optional[str] = None
    amount: float
    currency: str
    status: PaymentStatus
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra_metadata")
    processed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    refund_amount: Optional[float] = None
    refund_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
