"""
Certificate Service - Issue, list, verify and render certificates for passed attempts
"""

from typing import Dict, Any, List, Optional
from datetime import timedelta
from xml.sax.saxutils import escape
import io
import uuid

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm, inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError, BusinessRuleError, CertificateNotFoundError, DocumentGenerationError
)
from app.core.logging_config import logger
from app.core.permissions import is_admin
from app.core.types import utcnow
from app.models.attempt import ExamAttempt
from app.models.certificate import Certificate
from app.models.exam import Exam
from app.models.exam_category import ExamCategory
from app.models.user import User


def generate_certificate_number() -> str:
    """CERT-YYYYMMDD-XXXXXXXX"""
    timestamp = utcnow().strftime("%Y%m%d")
    unique_part = uuid.uuid4().hex[:8].upper()
    return f"CERT-{timestamp}-{unique_part}"


def generate_certificate_filename(certificate_number: str, student_name: str) -> str:
    """Generate a safe filename for the certificate"""
    safe_name = "".join(c if c.isalnum() or c in (' ', '-', '_') else '' for c in student_name)
    safe_name = safe_name.replace(' ', '_')[:30]
    return f"CERTIFICATE_{certificate_number}_{safe_name}.pdf"


def render_certificate_pdf(details: Dict[str, Any]) -> bytes:
    """Landscape A4 certificate built with reportlab platypus"""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=1*cm,
        leftMargin=1*cm,
        topMargin=1.5*cm,
        bottomMargin=1*cm
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'CertTitle',
        parent=styles['Heading1'],
        fontSize=28,
        textColor=colors.HexColor('#1a365d'),
        alignment=TA_CENTER,
        spaceAfter=10
    )
    subtitle_style = ParagraphStyle(
        'CertSubtitle',
        parent=styles['Heading2'],
        fontSize=16,
        textColor=colors.HexColor('#4a5568'),
        alignment=TA_CENTER,
        spaceAfter=20
    )
    name_style = ParagraphStyle(
        'StudentName',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#2d3748'),
        alignment=TA_CENTER,
        spaceBefore=10,
        spaceAfter=10
    )
    exam_style = ParagraphStyle(
        'ExamTitle',
        parent=styles['Heading2'],
        fontSize=18,
        textColor=colors.HexColor('#3182ce'),
        alignment=TA_CENTER,
        spaceAfter=16
    )
    body_style = ParagraphStyle(
        'CertBody',
        parent=styles['Normal'],
        fontSize=12,
        textColor=colors.HexColor('#4a5568'),
        alignment=TA_CENTER,
        spaceAfter=6
    )
    small_style = ParagraphStyle(
        'CertSmall',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#718096'),
        alignment=TA_CENTER,
        spaceAfter=4
    )

    content = [
        Paragraph(escape(settings.ORGANIZATION_NAME.upper()), title_style),
        Paragraph("Certificate of Achievement", subtitle_style),
        Paragraph("This is to certify that", body_style),
        Paragraph(f"<b>{escape(details['student_name'])}</b>", name_style),
        Paragraph("has successfully passed the examination", body_style),
        Paragraph(f"<b>{escape(details['exam_title'])}</b>", exam_style),
    ]

    results = Table([
        ['Category', 'Score', 'Issued On', 'Valid Until'],
        [
            details.get('category') or '-',
            f"{details['percentage']:.1f}%",
            details['issued_at'].strftime("%B %d, %Y"),
            details['expires_at'].strftime("%B %d, %Y") if details.get('expires_at') else '-',
        ],
    ], colWidths=[2.5*inch, 1.5*inch, 2*inch, 2*inch])
    results.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e2e8f0')),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#2d3748')),
        ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
        ('GRID', (0, 0), (-1, -1), 1, colors.HexColor('#cbd5e0')),
        ('TOPPADDING', (0, 0), (-1, -1), 8),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
    ]))
    content.append(results)
    content.append(Spacer(1, 30))

    number = escape(details['certificate_number'])
    content.append(Paragraph(f"Certificate Number: <b>{number}</b>", small_style))
    content.append(Paragraph(
        f"Verify this certificate at: <font color='#3182ce'>{escape(settings.get_verify_url(details['certificate_number']))}</font>",
        small_style
    ))

    try:
        doc.build(content)
    except Exception as e:
        logger.error(f"[CertificateService] Error generating PDF: {e}", exc_info=True)
        raise DocumentGenerationError("Failed to generate certificate PDF", doc_type="certificate")

    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


class CertificateService:
    """Certificates for passed exam attempts"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def issue_for_attempt(self, attempt: ExamAttempt) -> Certificate:
        """Issue once per attempt; later calls return the existing certificate"""
        result = await self.db.execute(
            select(Certificate).where(Certificate.attempt_id == attempt.id)
        )
        existing = result.scalar_one_or_none()
        if existing:
            return existing

        issued_at = utcnow()
        certificate = Certificate(
            user_id=attempt.user_id,
            exam_id=attempt.exam_id,
            attempt_id=attempt.id,
            certificate_number=generate_certificate_number(),
            percentage=attempt.percentage or 0.0,
            issued_at=issued_at,
            expires_at=issued_at + timedelta(days=settings.CERTIFICATE_VALIDITY_DAYS),
            is_valid=True,
        )
        self.db.add(certificate)
        await self.db.flush()
        logger.info(f"[CertificateService] Issued {certificate.certificate_number} for attempt {attempt.id}")
        return certificate

    async def generate_for_attempt(self, attempt_id: str, user: User) -> Certificate:
        result = await self.db.execute(select(ExamAttempt).where(ExamAttempt.id == attempt_id))
        attempt = result.scalar_one_or_none()
        if not attempt or (attempt.user_id != user.id and not is_admin(user.role)):
            raise CertificateNotFoundError(attempt_id)
        if not attempt.is_passed:
            raise BusinessRuleError("Certificate can only be generated for passed attempts")

        certificate = await self.issue_for_attempt(attempt)
        await self.db.commit()
        return certificate

    async def list_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Certificate, Exam.title)
            .join(Exam, Certificate.exam_id == Exam.id)
            .where(Certificate.user_id == user_id)
            .order_by(Certificate.issued_at.desc())
        )
        return [
            {**self.serialize(certificate), "exam_title": title}
            for certificate, title in result.all()
        ]

    async def get_certificate(self, certificate_id: str, user: User) -> Certificate:
        result = await self.db.execute(select(Certificate).where(Certificate.id == certificate_id))
        certificate = result.scalar_one_or_none()
        if not certificate:
            raise CertificateNotFoundError(certificate_id)
        if certificate.user_id != user.id and not is_admin(user.role):
            raise AuthorizationError("You can only access your own certificates")
        return certificate

    async def _details(self, certificate: Certificate) -> Dict[str, Any]:
        row = (await self.db.execute(
            select(User.first_name, User.last_name, Exam.title, ExamCategory.name)
            .select_from(Certificate)
            .join(User, Certificate.user_id == User.id)
            .join(Exam, Certificate.exam_id == Exam.id)
            .outerjoin(ExamCategory, Exam.exam_category_id == ExamCategory.id)
            .where(Certificate.id == certificate.id)
        )).one()
        return {
            "certificate_number": certificate.certificate_number,
            "student_name": f"{row[0]} {row[1]}",
            "exam_title": row[2],
            "category": row[3],
            "percentage": certificate.percentage,
            "issued_at": certificate.issued_at,
            "expires_at": certificate.expires_at,
        }

    async def render_pdf(self, certificate: Certificate) -> Dict[str, Any]:
        details = await self._details(certificate)
        return {
            "content": render_certificate_pdf(details),
            "filename": generate_certificate_filename(certificate.certificate_number, details["student_name"]),
        }

    async def verify(self, certificate_number: str) -> Dict[str, Any]:
        """Public verification by certificate number"""
        result = await self.db.execute(
            select(Certificate).where(Certificate.certificate_number == certificate_number)
        )
        certificate = result.scalar_one_or_none()
        if not certificate:
            raise CertificateNotFoundError(certificate_number)

        details = await self._details(certificate)
        expired = certificate.is_expired()
        return {
            "is_valid": bool(certificate.is_valid and not expired),
            "is_expired": expired,
            "certificate_number": certificate.certificate_number,
            "holder": details["student_name"],
            "exam": details["exam_title"],
            "category": details["category"],
            "percentage": certificate.percentage,
            "issued_at": certificate.issued_at.isoformat(),
            "expires_at": certificate.expires_at.isoformat() if certificate.expires_at else None,
        }

    @staticmethod
    def serialize(certificate: Certificate) -> Dict[str, Any]:
        return {
            "id": certificate.id,
            "exam_id": certificate.exam_id,
            "attempt_id": certificate.attempt_id,
            "certificate_number": certificate.certificate_number,
            "percentage": certificate.percentage,
            "issued_at": certificate.issued_at.isoformat() if certificate.issued_at else None,
            "expires_at": certificate.expires_at.isoformat() if certificate.expires_at else None,
            "is_valid": certificate.is_valid,
            "verify_url": settings.get_verify_url(certificate.certificate_number),
        }
