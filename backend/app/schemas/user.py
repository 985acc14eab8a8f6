from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import date

from app.models.user import UserRole, Gender
from app.schemas.auth import RegisterRequest, UserResponse, NAME_FIELD, PHONE_PATTERN


class AdminUserCreate(RegisterRequest):
    is_active: bool = True
    is_email_verified: bool = False


class AdminUserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, **NAME_FIELD)
    last_name: Optional[str] = Field(None, **NAME_FIELD)
    phone: Optional[str] = Field(None, max_length=20, pattern=PHONE_PATTERN)
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None
    is_email_verified: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


class UserStatusUpdate(BaseModel):
    is_active: bool


class BulkUserImport(BaseModel):
    users: List[AdminUserCreate] = Field(..., min_length=1, max_length=100)


class AdminUserDetail(UserResponse):
    attempt_count: int = 0
    booking_count: int = 0
    certificate_count: int = 0
