"""
Authentication Service
Login with lockout, session-backed refresh tokens, email verification and
password lifecycle
"""

from typing import Any, Dict, Optional
from datetime import timedelta

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from app.core.config import settings
from app.core.exceptions import (
    AccountLockedError, AuthenticationError, BusinessRuleError, ValidationError
)
from app.core.logging_config import logger, set_user_id
from app.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_secure_token,
)
from app.core.types import utcnow
from app.models.user import User
from app.models.session import UserSession
from app.schemas.auth import ProfileUpdate, RegisterRequest, UserResponse
from app.services.audit_service import AuditService, client_info
from app.services.user_service import UserService

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_REFRESH = "Invalid or expired refresh token"
RESET_REQUESTED_MESSAGE = "If an account exists for this email, a password reset link has been sent"


class AuthService:
    """Service for the authentication lifecycle"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.request = request
        self.audit = AuditService(db, request)

    async def _user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def _issue_tokens(self, user: User, remember_me: bool = False) -> Dict[str, Any]:
        """Access token plus a refresh token backed by a new session row"""
        token_data = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
        }
        lifetime = UserSession.lifetime(
            remember_me, settings.SESSION_DAYS, settings.REMEMBER_ME_SESSION_DAYS
        )
        refresh_token = create_refresh_token({"sub": str(user.id)}, expires_delta=lifetime)

        ip_address, user_agent = client_info(self.request)
        self.db.add(UserSession(
            user_id=user.id,
            refresh_token=refresh_token,
            expires_at=utcnow() + lifetime,
            ip_address=ip_address,
            user_agent=user_agent,
        ))

        return {
            "user": UserResponse.model_validate(user).model_dump(),
            "access_token": create_access_token(token_data),
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }

    async def login(self, email: str, password: str, remember_me: bool = False) -> Dict[str, Any]:
        client_ip, _ = client_info(self.request)
        user = await self._user_by_email(email)

        if not user:
            logger.log_auth_event("login", False, email, "Unknown email", client_ip=client_ip)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not user.is_active:
            logger.log_auth_event("login", False, email, "Account inactive", client_ip=client_ip)
            raise AuthenticationError("Account is deactivated")

        now = utcnow()
        if user.is_locked(now):
            logger.log_auth_event("login", False, email, "Account locked", client_ip=client_ip)
            raise AccountLockedError(user.locked_until.isoformat())

        if not verify_password(password, user.hashed_password):
            user.login_attempts = (user.login_attempts or 0) + 1
            reason = "Invalid password"
            if user.login_attempts >= settings.MAX_LOGIN_ATTEMPTS:
                user.locked_until = now + timedelta(minutes=settings.LOCKOUT_MINUTES)
                user.login_attempts = 0
                reason = "Invalid password, account locked"
            # Persist the counter before failing the request
            await self.db.commit()
            logger.log_auth_event("login", False, email, reason, client_ip=client_ip)
            raise AuthenticationError(INVALID_CREDENTIALS)

        user.login_attempts = 0
        user.locked_until = None
        user.last_login_at = now

        payload = await self._issue_tokens(user, remember_me)
        await self.audit.log("USER_LOGIN", "USER", user.id, user.id, details={"remember_me": remember_me})
        await self.db.commit()

        set_user_id(str(user.id))
        logger.log_auth_event("login", True, user.email, client_ip=client_ip, user_role=user.role.value)
        return payload

    async def logout(self, user: User, refresh_token: Optional[str] = None) -> None:
        query = update(UserSession).where(UserSession.user_id == user.id)
        if refresh_token:
            query = query.where(UserSession.refresh_token == refresh_token)
        await self.db.execute(query.values(is_active=False))

        await self.audit.log(
            "USER_LOGOUT", "USER", user.id, user.id,
            details={"all_sessions": refresh_token is None},
        )
        await self.db.commit()
        logger.log_auth_event("logout", True, user.email)

    async def refresh(self, refresh_token: str) -> Dict[str, Any]:
        """Rotate a refresh token: the old session ends and a new one begins"""
        try:
            payload = decode_token(refresh_token)
        except HTTPException:
            logger.log_auth_event("refresh", False, reason="Undecodable token")
            raise AuthenticationError(INVALID_REFRESH)

        if payload.get("type") != "refresh":
            raise AuthenticationError(INVALID_REFRESH)

        result = await self.db.execute(
            select(UserSession).where(UserSession.refresh_token == refresh_token)
        )
        session = result.scalar_one_or_none()
        if not session or not session.is_usable():
            logger.log_auth_event("refresh", False, reason="Session inactive or expired")
            raise AuthenticationError(INVALID_REFRESH)

        result = await self.db.execute(select(User).where(User.id == session.user_id))
        user = result.scalar_one_or_none()
        if not user or not user.is_active:
            raise AuthenticationError(INVALID_REFRESH)

        session.is_active = False
        remember_me = (session.expires_at - session.created_at) > timedelta(days=settings.SESSION_DAYS)
        tokens = await self._issue_tokens(user, remember_me)
        await self.db.commit()

        logger.log_auth_event("refresh", True, user.email)
        return tokens

    async def register(self, data: RegisterRequest, actor: User) -> User:
        user = await UserService(self.db, self.request).create_user(
            data, actor, audit_action="USER_REGISTERED"
        )
        logger.log_auth_event("register", True, user.email, created_by=str(actor.id))
        return user

    async def verify_email(self, token: str) -> User:
        result = await self.db.execute(
            select(User).where(User.email_verification_token == token)
        )
        user = result.scalar_one_or_none()
        if not user:
            raise ValidationError("Invalid verification token", field="token")

        user.is_email_verified = True
        user.email_verification_token = None
        await self.audit.log("EMAIL_VERIFIED", "USER", user.id, user.id)
        await self.db.commit()

        logger.log_auth_event("verify_email", True, user.email)
        return user

    async def request_password_reset(self, email: str) -> str:
        """Same answer for known and unknown emails"""
        user = await self._user_by_email(email)
        if user and user.is_active:
            user.password_reset_token = generate_secure_token()
            user.password_reset_expires = utcnow() + timedelta(
                minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES
            )
            await self.audit.log("PASSWORD_RESET_REQUESTED", "USER", user.id, user.id)
            await self.db.commit()
            logger.info(f"[Auth] Password reset token issued for {user.email}")
        else:
            logger.log_auth_event("password_reset_request", False, email, "Unknown email")
        return RESET_REQUESTED_MESSAGE

    async def reset_password(self, token: str, new_password: str) -> None:
        result = await self.db.execute(
            select(User).where(User.password_reset_token == token)
        )
        user = result.scalar_one_or_none()
        if (
            not user
            or not user.password_reset_expires
            or user.password_reset_expires < utcnow()
        ):
            raise ValidationError("Invalid or expired reset token", field="token")

        user.hashed_password = get_password_hash(new_password)
        user.password_reset_token = None
        user.password_reset_expires = None
        user.login_attempts = 0
        user.locked_until = None
        await self._end_all_sessions(user)

        await self.audit.log("PASSWORD_RESET", "USER", user.id, user.id)
        await self.db.commit()
        logger.log_auth_event("password_reset", True, user.email)

    async def update_profile(self, user: User, data: ProfileUpdate) -> User:
        updates = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in updates.items():
            setattr(user, field, value.strip() if isinstance(value, str) else value)

        await self.audit.log(
            "PROFILE_UPDATED", "USER", user.id, user.id,
            details={"fields": sorted(updates.keys())},
        )
        await self.db.commit()
        return user

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.hashed_password):
            logger.log_auth_event("change_password", False, user.email, "Wrong current password")
            raise ValidationError("Current password is incorrect", field="current_password")

        if verify_password(new_password, user.hashed_password):
            raise BusinessRuleError("New password must be different from the current password")

        user.hashed_password = get_password_hash(new_password)
        await self._end_all_sessions(user)

        await self.audit.log("PASSWORD_CHANGED", "USER", user.id, user.id)
        await self.db.commit()
        logger.log_auth_event("change_password", True, user.email)

    async def _end_all_sessions(self, user: User) -> None:
        await self.db.execute(
            update(UserSession)
            .where(UserSession.user_id == user.id, UserSession.is_active.is_(True))
            .values(is_active=False)
        )
