from fastapi import APIRouter, Depends, status, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.permissions import get_permissions
from app.core.rate_limiter import limiter, LOGIN_LIMIT, PASSWORD_RESET_LIMIT
from app.core.security import check_password_strength
from app.models.user import User
from app.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    PasswordResetRequest,
    ResetPasswordRequest,
    ChangePasswordRequest,
    ProfileUpdate,
    PasswordStrengthRequest,
    UserResponse,
)
from app.schemas.common import success_response
from app.modules.auth.dependencies import get_current_user, require_admin
from app.services.auth_service import AuthService


router = APIRouter()


@router.post("/login")
@limiter.limit(LOGIN_LIMIT)
async def login(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login with email and password (rate limited: 5/min)"""
    tokens = await AuthService(db, request).login(
        credentials.email, credentials.password, credentials.remember_me
    )
    return success_response(tokens, "Login successful")


@router.post("/logout")
async def logout(
    request: Request,
    data: LogoutRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """End one session, or every session when no refresh token is given"""
    await AuthService(db, request).logout(current_user, data.refresh_token)
    return success_response(message="Logout successful")


@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    data: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db)
):
    """Exchange a refresh token for a new token pair"""
    tokens = await AuthService(db, request).refresh(data.refresh_token)
    return success_response(tokens, "Token refreshed successfully")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    user_data: RegisterRequest,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create an account (admins only)"""
    user = await AuthService(db, request).register(user_data, current_user)
    return success_response(
        UserResponse.model_validate(user).model_dump(),
        "User registered successfully"
    )


@router.get("/verify-email/{token}")
async def verify_email(
    token: str,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    user = await AuthService(db, request).verify_email(token)
    return success_response(
        UserResponse.model_validate(user).model_dump(),
        "Email verified successfully"
    )


@router.post("/request-password-reset")
@limiter.limit(PASSWORD_RESET_LIMIT)
async def request_password_reset(
    request: Request,
    data: PasswordResetRequest,
    db: AsyncSession = Depends(get_db)
):
    """Always answers the same way so accounts cannot be enumerated (rate limited: 3/min)"""
    message = await AuthService(db, request).request_password_reset(data.email)
    return success_response(message=message)


@router.post("/reset-password")
async def reset_password(
    request: Request,
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db)
):
    await AuthService(db, request).reset_password(data.token, data.password)
    return success_response(message="Password reset successfully")


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return success_response(UserResponse.model_validate(current_user).model_dump())


@router.put("/profile")
async def update_profile(
    request: Request,
    data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await AuthService(db, request).update_profile(current_user, data)
    return success_response(
        UserResponse.model_validate(user).model_dump(),
        "Profile updated successfully"
    )


@router.post("/change-password")
async def change_password(
    request: Request,
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Change password; every session is ended"""
    await AuthService(db, request).change_password(
        current_user, data.current_password, data.new_password
    )
    return success_response(message="Password changed successfully")


@router.get("/permissions")
async def permissions(current_user: User = Depends(get_current_user)):
    return success_response({
        "role": current_user.role.value,
        "permissions": get_permissions(current_user.role),
    })


@router.post("/password-strength")
async def password_strength(data: PasswordStrengthRequest):
    return success_response(check_password_strength(data.password))
