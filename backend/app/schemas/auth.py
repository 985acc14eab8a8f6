from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime, date

from app.core.security import validate_password_rules
from app.models.user import UserRole, Gender

NAME_FIELD = dict(min_length=2, max_length=50)
PHONE_PATTERN = r"^\+?[\d\s()-]+$"


def check_password(value: str) -> str:
    errors = validate_password_rules(value)
    if errors:
        raise ValueError("; ".join(errors))
    return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = False


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    first_name: str = Field(..., **NAME_FIELD)
    last_name: str = Field(..., **NAME_FIELD)
    phone: Optional[str] = Field(None, max_length=20, pattern=PHONE_PATTERN)
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = None
    role: UserRole = UserRole.STUDENT

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class PasswordResetRequest(BaseModel):
    email: EmailStr


class _PasswordConfirmation(BaseModel):
    """Mixin for payloads carrying a new password and its confirmation"""

    @model_validator(mode="after")
    def passwords_match(self):
        if self._new_password() != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self

    def _new_password(self) -> str:
        raise NotImplementedError


class ResetPasswordRequest(_PasswordConfirmation):
    token: str = Field(..., min_length=1)
    password: str
    confirm_password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v)

    def _new_password(self) -> str:
        return self.password


class ChangePasswordRequest(_PasswordConfirmation):
    current_password: str = Field(..., min_length=1)
    new_password: str
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password(v)

    def _new_password(self) -> str:
        return self.new_password


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, **NAME_FIELD)
    last_name: Optional[str] = Field(None, **NAME_FIELD)
    phone: Optional[str] = Field(None, max_length=20, pattern=PHONE_PATTERN)
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = None


class PasswordStrengthRequest(BaseModel):
    password: str


class PasswordStrengthResponse(BaseModel):
    score: int
    strength: str
    is_valid: bool
    errors: List[str]


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    full_name: str
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    date_of_birth: Optional[date] = None
    role: UserRole
    is_active: bool
    is_email_verified: bool
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
