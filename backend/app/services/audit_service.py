"""
Audit Trail Service
Records user and system actions to the audit_logs table and mirrors them to the log
"""

from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.core.logging_config import logger
from app.models.audit_log import AuditLog


def client_info(request: Optional[Request]) -> Tuple[Optional[str], Optional[str]]:
    """(ip_address, user_agent) of a request"""
    if request is None:
        return None, None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")


class AuditService:
    """Service for writing and querying the audit trail"""

    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.request = request

    async def log(
        self,
        action: str,
        resource: str,
        resource_id: Optional[str] = None,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditLog:
        """Add an audit entry to the session; it is committed with the caller's unit of work"""
        request_ip, request_ua = client_info(self.request)
        entry = AuditLog(
            user_id=str(user_id) if user_id else None,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id else None,
            details=details or {},
            ip_address=ip_address or request_ip,
            user_agent=user_agent or request_ua,
        )
        self.db.add(entry)
        logger.log_audit_event(action, resource, entry.resource_id, entry.user_id)
        return entry

    async def list_logs(
        self,
        page: int = 1,
        limit: int = 50,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Tuple[List[AuditLog], int]:
        query = select(AuditLog)
        count_query = select(func.count(AuditLog.id))

        filters = []
        if user_id:
            filters.append(AuditLog.user_id == user_id)
        if action:
            filters.append(AuditLog.action == action)
        if resource:
            filters.append(AuditLog.resource == resource)
        if start_date:
            filters.append(AuditLog.created_at >= start_date)
        if end_date:
            filters.append(AuditLog.created_at <= end_date)

        if filters:
            query = query.where(*filters)
            count_query = count_query.where(*filters)

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(AuditLog.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    def serialize(entry: AuditLog) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "user_id": entry.user_id,
            "action": entry.action,
            "resource": entry.resource,
            "resource_id": entry.resource_id,
            "details": entry.details or {},
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent,
            "created_at": entry.created_at.isoformat() if entry.created_at else None,
        }
