from sqlalchemy import Column, String, DateTime, Boolean, Float, ForeignKey
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.core.types import GUID, generate_uuid, utcnow


class Certificate(Base):
    """Certificate issued for a passed attempt"""
    __tablename__ = "certificates"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(GUID, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    attempt_id = Column(GUID, ForeignKey("exam_attempts.id", ondelete="CASCADE"), unique=True, nullable=False)

    certificate_number = Column(String(50), unique=True, nullable=False, index=True)  # CERT-YYYYMMDD-XXXXXXXX
    percentage = Column(Float, nullable=False)

    issued_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    is_valid = Column(Boolean, default=True, nullable=False)

    user = relationship("User", back_populates="certificates")
    attempt = relationship("ExamAttempt", back_populates="certificate")

    def is_expired(self, now=None) -> bool:
        now = now or utcnow()
        return self.expires_at is not None and self.expires_at < now

    def __repr__(self):
        return f"<Certificate {self.certificate_number}>"
