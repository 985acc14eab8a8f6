from sqlalchemy import Column, String, DateTime, ForeignKey, Boolean, Text
from sqlalchemy.orm import relationship
from datetime import timedelta

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class UserSession(Base):
    """Login session backing one refresh token"""
    __tablename__ = "user_sessions"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    refresh_token = Column(Text, unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    # Device/browser info
    user_agent = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="sessions")

    def is_expired(self) -> bool:
        """Check if session is expired"""
        return utcnow() > self.expires_at

    def is_usable(self) -> bool:
        return self.is_active and not self.is_expired()

    @staticmethod
    def lifetime(remember_me: bool, session_days: int, remember_me_days: int) -> timedelta:
        return timedelta(days=remember_me_days if remember_me else session_days)

    def __repr__(self):
        return f"<UserSession {self.id} user={self.user_id}>"
