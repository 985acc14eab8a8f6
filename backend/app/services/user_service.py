"""
User Administration Service
Account creation, updates, soft deletion and bulk import for staff
"""

from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_, update

from app.core.exceptions import (
    AuthorizationError, BusinessRuleError, ConflictError, UserNotFoundError
)
from app.core.logging_config import logger
from app.core.permissions import can_manage_role
from app.core.security import get_password_hash, generate_secure_token
from app.models.user import User, UserRole
from app.models.session import UserSession
from app.models.attempt import ExamAttempt
from app.models.booking import ExamBooking
from app.models.payment import Payment
from app.models.certificate import Certificate
from app.schemas.user import AdminUserCreate, AdminUserUpdate
from app.schemas.auth import RegisterRequest
from app.services.audit_service import AuditService


class UserService:
    """Service for managing user accounts"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.audit = AuditService(db, request)

    async def get_user(self, user_id: str) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()

    async def list_users(
        self,
        page: int = 1,
        limit: int = 20,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[User], int]:
        filters = []
        if role:
            filters.append(User.role == role)
        if is_active is not None:
            filters.append(User.is_active == is_active)
        if search:
            pattern = f"%{search}%"
            filters.append(or_(
                User.email.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
            ))

        total = (await self.db.execute(select(func.count(User.id)).where(*filters))).scalar() or 0
        result = await self.db.execute(
            select(User).where(*filters)
            .order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_user_detail(self, user_id: str) -> Dict[str, Any]:
        """User plus activity counts"""
        user = await self.get_user(user_id)
        counts = {}
        for key, model in (
            ("attempt_count", ExamAttempt),
            ("booking_count", ExamBooking),
            ("certificate_count", Certificate),
        ):
            counts[key] = (await self.db.execute(
                select(func.count(model.id)).where(model.user_id == user_id)
            )).scalar() or 0
        return {"user": user, **counts}

    def _check_role_grant(self, actor: User, role: Optional[UserRole]) -> None:
        if role is not None and not can_manage_role(actor.role, role):
            raise AuthorizationError("Only super admins can assign admin roles")

    async def create_user(
        self,
        data: RegisterRequest,
        actor: User,
        audit_action: str = "USER_CREATED",
        commit: bool = True,
    ) -> User:
        """Create an account on behalf of an admin"""
        self._check_role_grant(actor, data.role)

        if await self.get_by_email(data.email):
            raise ConflictError("User with this email already exists", email=data.email)

        user = User(
            email=data.email.lower(),
            hashed_password=get_password_hash(data.password),
            first_name=data.first_name.strip(),
            last_name=data.last_name.strip(),
            phone=data.phone,
            gender=data.gender,
            date_of_birth=data.date_of_birth,
            role=data.role,
            is_active=getattr(data, "is_active", True),
            is_email_verified=getattr(data, "is_email_verified", False),
            email_verification_token=generate_secure_token(),
        )
        if user.is_email_verified:
            user.email_verification_token = None

        self.db.add(user)
        await self.db.flush()

        await self.audit.log(
            audit_action, "USER", user.id, actor.id,
            details={"email": user.email, "role": user.role.value},
        )
        if commit:
            await self.db.commit()

        if user.email_verification_token:
            logger.info(f"[Users] Verification token issued for {user.email}")
        return user

    async def update_user(self, user_id: str, data: AdminUserUpdate, actor: User) -> User:
        user = await self.get_user(user_id)
        updates = data.model_dump(exclude_unset=True, exclude_none=True)

        new_role = updates.get("role")
        if new_role is not None and new_role != user.role:
            # Promotion to or demotion from an admin role
            if not (can_manage_role(actor.role, new_role) and can_manage_role(actor.role, user.role)):
                raise AuthorizationError("Only super admins can change admin roles")

        new_email = updates.get("email")
        if new_email and new_email != user.email:
            existing = await self.get_by_email(new_email)
            if existing and existing.id != user.id:
                raise ConflictError("User with this email already exists", email=new_email)

        for field, value in updates.items():
            setattr(user, field, value)

        if updates.get("is_active") is False:
            await self._end_sessions(user.id)

        await self.audit.log(
            "USER_UPDATED", "USER", user.id, actor.id,
            details={"fields": sorted(updates.keys())},
        )
        await self.db.commit()
        return user

    async def delete_user(self, user_id: str, actor: User) -> Dict[str, Any]:
        """Hard delete, or deactivate when the user has exam or payment history"""
        if str(user_id) == str(actor.id):
            raise BusinessRuleError("You cannot delete your own account")

        user = await self.get_user(user_id)

        attempts = (await self.db.execute(
            select(func.count(ExamAttempt.id)).where(ExamAttempt.user_id == user.id)
        )).scalar() or 0
        payments = (await self.db.execute(
            select(func.count(Payment.id)).where(Payment.user_id == user.id)
        )).scalar() or 0

        if attempts or payments:
            user.is_active = False
            await self._end_sessions(user.id)
            await self.audit.log(
                "USER_DEACTIVATED", "USER", user.id, actor.id,
                details={"reason": "has_history", "attempts": attempts, "payments": payments},
            )
            await self.db.commit()
            return {"deleted": False, "deactivated": True}

        await self.audit.log("USER_DELETED", "USER", user.id, actor.id, details={"email": user.email})
        await self.db.delete(user)
        await self.db.commit()
        return {"deleted": True, "deactivated": False}

    async def set_status(self, user_id: str, is_active: bool, actor: User) -> User:
        if str(user_id) == str(actor.id) and not is_active:
            raise BusinessRuleError("You cannot deactivate your own account")

        user = await self.get_user(user_id)
        previous = user.is_active
        user.is_active = is_active
        if not is_active:
            await self._end_sessions(user.id)

        await self.audit.log(
            "USER_STATUS_CHANGED", "USER", user.id, actor.id,
            details={"from": previous, "to": is_active},
        )
        await self.db.commit()
        return user

    async def bulk_import(self, users: List[AdminUserCreate], actor: User) -> Dict[str, Any]:
        """Create users one by one; failures are reported per row"""
        successful, failed = [], []
        for index, data in enumerate(users):
            try:
                user = await self.create_user(data, actor, commit=False)
                successful.append({"index": index, "id": user.id, "email": user.email})
            except (ConflictError, AuthorizationError) as e:
                failed.append({"index": index, "email": data.email, "error": e.message})

        await self.audit.log(
            "BULK_USER_IMPORT", "USER", None, actor.id,
            details={"successful": len(successful), "failed": len(failed)},
        )
        await self.db.commit()
        logger.info(f"[Users] Bulk import: {len(successful)} created, {len(failed)} failed")
        return {
            "successful": successful,
            "failed": failed,
            "summary": {"total": len(users), "successful": len(successful), "failed": len(failed)},
        }

    async def _end_sessions(self, user_id: str) -> None:
        await self.db.execute(
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .values(is_active=False)
        )
