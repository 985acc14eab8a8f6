"""
System Administration Service
Health checks and data export for administrators
"""

from typing import Any, Callable, Dict, List, Optional, Tuple
from datetime import timedelta
import csv
import io
import json
import time

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text

from app.core.config import settings
from app.core.exceptions import ValidationError
from app.core.logging_config import logger
from app.core.types import utcnow
from app.models.attempt import ExamAttempt
from app.models.booking import ExamBooking
from app.models.exam import Exam
from app.models.payment import Payment
from app.models.user import User
from app.services.audit_service import AuditService

STARTED_AT = time.time()

EXPORT_LIMIT = 10000


def _iso(value) -> str:
    return value.isoformat() if value else ""


def _enum(value) -> str:
    return value.value if value is not None else ""


# resource -> (model, [(column header, getter)])
EXPORT_COLUMNS: Dict[str, Tuple[Any, List[Tuple[str, Callable[[Any], Any]]]]] = {
    "users": (User, [
        ("id", lambda u: u.id),
        ("email", lambda u: u.email),
        ("first_name", lambda u: u.first_name),
        ("last_name", lambda u: u.last_name),
        ("role", lambda u: _enum(u.role)),
        ("is_active", lambda u: u.is_active),
        ("is_email_verified", lambda u: u.is_email_verified),
        ("last_login_at", lambda u: _iso(u.last_login_at)),
        ("created_at", lambda u: _iso(u.created_at)),
    ]),
    "exams": (Exam, [
        ("id", lambda e: e.id),
        ("title", lambda e: e.title),
        ("exam_category_id", lambda e: e.exam_category_id),
        ("duration", lambda e: e.duration),
        ("total_marks", lambda e: e.total_marks),
        ("passing_marks", lambda e: e.passing_marks),
        ("price", lambda e: e.price),
        ("currency", lambda e: e.currency),
        ("is_active", lambda e: e.is_active),
        ("is_public", lambda e: e.is_public),
        ("created_at", lambda e: _iso(e.created_at)),
    ]),
    "bookings": (ExamBooking, [
        ("id", lambda b: b.id),
        ("user_id", lambda b: b.user_id),
        ("exam_id", lambda b: b.exam_id),
        ("scheduled_at", lambda b: _iso(b.scheduled_at)),
        ("status", lambda b: _enum(b.status)),
        ("attempts_allowed", lambda b: b.attempts_allowed),
        ("attempts_used", lambda b: b.attempts_used),
        ("total_amount", lambda b: b.total_amount),
        ("currency", lambda b: b.currency),
        ("created_at", lambda b: _iso(b.created_at)),
    ]),
    "payments": (Payment, [
        ("id", lambda p: p.id),
        ("user_id", lambda p: p.user_id),
        ("booking_id", lambda p: p.booking_id or ""),
        ("amount", lambda p: p.amount),
        ("currency", lambda p: p.currency),
        ("status", lambda p: _enum(p.status)),
        ("payment_method", lambda p: _enum(p.payment_method)),
        ("transaction_id", lambda p: p.transaction_id or ""),
        ("processed_at", lambda p: _iso(p.processed_at)),
        ("refund_amount", lambda p: p.refund_amount if p.refund_amount is not None else ""),
        ("created_at", lambda p: _iso(p.created_at)),
    ]),
    "attempts": (ExamAttempt, [
        ("id", lambda a: a.id),
        ("user_id", lambda a: a.user_id),
        ("exam_id", lambda a: a.exam_id),
        ("booking_id", lambda a: a.booking_id or ""),
        ("status", lambda a: _enum(a.status)),
        ("total_score", lambda a: a.total_score),
        ("max_score", lambda a: a.max_score),
        ("percentage", lambda a: a.percentage),
        ("is_passed", lambda a: a.is_passed),
        ("time_spent", lambda a: a.time_spent),
        ("started_at", lambda a: _iso(a.started_at)),
        ("completed_at", lambda a: _iso(a.completed_at)),
    ]),
}

EXPORT_FORMATS = ("csv", "json")


class AdminService:
    """System health and exports"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.audit = AuditService(db, request)

    async def health(self) -> Dict[str, Any]:
        start = time.time()
        try:
            await self.db.execute(text("SELECT 1"))
            database = {"status": "healthy", "latency_ms": round((time.time() - start) * 1000, 2)}
        except Exception as e:
            logger.error(f"[Admin] Database health check failed: {e}")
            database = {"status": "unhealthy", "error": str(e)}

        active_users = 0
        if database["status"] == "healthy":
            active_users = await self.db.scalar(
                select(func.count(User.id)).where(User.last_login_at >= utcnow() - timedelta(hours=1))
            ) or 0

        return {
            "status": "healthy" if database["status"] == "healthy" else "degraded",
            "database": database,
            "activeUsers": active_users,
            "uptime": round(time.time() - STARTED_AT, 2),
            "environment": settings.ENVIRONMENT,
            "timestamp": utcnow().isoformat(),
        }

    async def export(self, resource: str, fmt: str, actor: User) -> Dict[str, Any]:
        """Returns {content, media_type, filename}"""
        if resource not in EXPORT_COLUMNS:
            raise ValidationError(
                f"Unsupported export resource. Use one of: {', '.join(EXPORT_COLUMNS)}", field="resource"
            )
        if fmt not in EXPORT_FORMATS:
            raise ValidationError("Unsupported export format. Use csv or json", field="format")

        model, columns = EXPORT_COLUMNS[resource]
        result = await self.db.execute(
            select(model).order_by(model.created_at.desc()).limit(EXPORT_LIMIT)
        )
        rows = [[getter(obj) for _, getter in columns] for obj in result.scalars().all()]
        headers = [name for name, _ in columns]

        stamp = utcnow().strftime('%Y%m%d_%H%M%S')
        if fmt == "csv":
            output = io.StringIO()
            writer = csv.writer(output)
            writer.writerow(headers)
            writer.writerows(rows)
            content = output.getvalue()
            media_type = "text/csv"
        else:
            content = json.dumps([dict(zip(headers, row)) for row in rows], default=str)
            media_type = "application/json"

        await self.audit.log(
            "DATA_EXPORTED", "SYSTEM", None, actor.id,
            details={"resource": resource, "format": fmt, "rows": len(rows)},
        )
        await self.db.commit()

        return {
            "content": content,
            "media_type": media_type,
            "filename": f"{resource}_export_{stamp}.{fmt}",
        }
