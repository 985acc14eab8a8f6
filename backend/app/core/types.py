"""Custom SQLAlchemy column types and time helpers shared by the models"""
from datetime import datetime, timezone
from typing import Optional
import uuid

from sqlalchemy import TypeDecorator, String, Numeric


def generate_uuid() -> str:
    """Generate a UUID string"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC now - every timestamp column stores naive UTC"""
    return datetime.utcnow()


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC, leave naive values alone"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class GUID(TypeDecorator):
    """Platform-independent GUID stored as VARCHAR(36)"""
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        return str(value) if value is not None else None

    def process_result_value(self, value, dialect):
        return str(value) if value is not None else None


class Money(TypeDecorator):
    """NUMERIC(10, 2) that round-trips as float rounded to cents"""
    impl = Numeric(10, 2, asdecimal=False)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return round(float(value), 2) if value is not None else None

    def process_result_value(self, value, dialect):
        return round(float(value), 2) if value is not None else None
