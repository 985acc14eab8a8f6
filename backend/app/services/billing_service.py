"""
Billing Service - Bills derived from bookings, and their PDF rendering
"""

from typing import Any, Dict, List, Optional, Tuple
from datetime import timedelta
from xml.sax.saxutils import escape
import io

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm, inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.core.config import settings
from app.core.exceptions import AuthorizationError, DocumentGenerationError
from app.core.logging_config import logger
from app.core.permissions import is_admin
from app.core.types import utcnow
from app.models.booking import ExamBooking
from app.models.exam import Exam
from app.models.exam_category import ExamCategory
from app.models.payment import Payment, PaymentStatus
from app.models.user import User
from app.services.booking_service import BookingService


def bill_number(booking: ExamBooking) -> str:
    """BILL-YYYYMMDD-XXXXXXXX, stable for a booking"""
    return f"BILL-{booking.created_at.strftime('%Y%m%d')}-{booking.id.replace('-', '')[:8].upper()}"


def _money(amount: float, currency: str) -> str:
    return f"{currency} {amount:,.2f}"


def render_bill_pdf(bill: Dict[str, Any]) -> bytes:
    """A4 bill: header, meta, customer, line items and totals"""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=2*cm,
        leftMargin=2*cm,
        topMargin=2*cm,
        bottomMargin=2*cm
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'BillTitle',
        parent=styles['Heading1'],
        fontSize=22,
        textColor=colors.HexColor('#1a365d'),
        alignment=TA_CENTER,
        spaceAfter=6
    )
    subtitle_style = ParagraphStyle(
        'BillSubtitle',
        parent=styles['Normal'],
        fontSize=12,
        textColor=colors.HexColor('#4a5568'),
        alignment=TA_CENTER,
        spaceAfter=20
    )
    heading_style = ParagraphStyle(
        'BillHeading',
        parent=styles['Heading3'],
        fontSize=12,
        textColor=colors.HexColor('#2d3748'),
        spaceBefore=12,
        spaceAfter=6
    )
    body_style = ParagraphStyle('BillBody', parent=styles['Normal'], fontSize=10, leading=14)
    right_style = ParagraphStyle('BillRight', parent=body_style, alignment=TA_RIGHT)

    amount = bill['amount']
    currency = amount['currency']
    customer = bill['customer']
    exam = bill['exam']
    booking = bill['booking']

    content = [
        Paragraph(escape(settings.ORGANIZATION_NAME.upper()), title_style),
        Paragraph("Exam Booking Bill", subtitle_style),
    ]

    meta = Table([
        ['Bill Number', bill['billNumber'], 'Status', bill['status']],
        ['Bill Date', bill['billDate'][:10], 'Due Date', bill['dueDate'][:10]],
    ], colWidths=[1.3*inch, 2.2*inch, 1*inch, 1.8*inch])
    meta.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#2d3748')),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    content.append(meta)

    content.append(Paragraph("Bill To", heading_style))
    content.append(Paragraph(escape(customer['name']), body_style))
    content.append(Paragraph(escape(customer['email']), body_style))
    if customer.get('phone'):
        content.append(Paragraph(escape(customer['phone']), body_style))

    content.append(Paragraph("Details", heading_style))
    items = Table([
        ['Description', 'Category', 'Scheduled', 'Attempts', 'Amount'],
        [
            Paragraph(escape(exam['title']), body_style),
            exam.get('category') or '-',
            booking['scheduled_at'][:16].replace('T', ' '),
            str(booking['attempts_allowed']),
            _money(amount['subtotal'], currency),
        ],
    ], colWidths=[2.4*inch, 1.2*inch, 1.4*inch, 0.8*inch, 1.1*inch])
    items.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e2e8f0')),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('ALIGN', (3, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#cbd5e0')),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    content.append(items)
    content.append(Spacer(1, 12))

    totals = Table([
        ['Subtotal', _money(amount['subtotal'], currency)],
        ['Tax', _money(amount['tax'], currency)],
        ['Total', _money(amount['total'], currency)],
    ], colWidths=[5.8*inch, 1.1*inch])
    totals.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('LINEABOVE', (0, -1), (-1, -1), 1, colors.HexColor('#2d3748')),
    ]))
    content.append(totals)

    if bill.get('payment'):
        payment = bill['payment']
        content.append(Spacer(1, 16))
        content.append(Paragraph(
            f"Paid via {escape(payment['payment_method'])} on {escape((payment.get('processed_at') or '')[:10])}",
            right_style
        ))

    try:
        doc.build(content)
    except Exception as e:
        logger.error(f"[BillingService] Error generating PDF: {e}", exc_info=True)
        raise DocumentGenerationError("Failed to generate bill PDF", doc_type="bill")

    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


class BillingService:
    """Bills for exam bookings"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _latest_completed_payment(self, booking_id: str) -> Optional[Payment]:
        result = await self.db.execute(
            select(Payment)
            .where(Payment.booking_id == booking_id, Payment.status == PaymentStatus.COMPLETED)
            .order_by(Payment.processed_at.desc(), Payment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def build_bill(self, booking: ExamBooking) -> Dict[str, Any]:
        row = (await self.db.execute(
            select(User, Exam, ExamCategory.name)
            .select_from(ExamBooking)
            .join(User, ExamBooking.user_id == User.id)
            .join(Exam, ExamBooking.exam_id == Exam.id)
            .outerjoin(ExamCategory, Exam.exam_category_id == ExamCategory.id)
            .where(ExamBooking.id == booking.id)
        )).one()
        user, exam, category_name = row
        payment = await self._latest_completed_payment(booking.id)
        subtotal = float(booking.total_amount or 0)

        return {
            "billNumber": bill_number(booking),
            "billDate": utcnow().isoformat(),
            "dueDate": (booking.created_at + timedelta(days=settings.BILL_DUE_DAYS)).isoformat(),
            "status": "PAID" if payment else "PENDING",
            "booking": {
                "id": booking.id,
                "scheduled_at": booking.scheduled_at.isoformat(),
                "status": booking.status.value,
                "attempts_allowed": booking.attempts_allowed,
                "attempts_used": booking.attempts_used,
            },
            "exam": {
                "id": exam.id,
                "title": exam.title,
                "category": category_name,
                "duration": exam.duration,
            },
            "customer": {
                "id": user.id,
                "name": user.full_name,
                "email": user.email,
                "phone": user.phone,
            },
            "amount": {
                "subtotal": subtotal,
                "tax": 0.0,
                "total": subtotal,
                "currency": booking.currency,
            },
            "payment": {
                "id": payment.id,
                "amount": payment.amount,
                "payment_method": payment.payment_method.value,
                "transaction_id": payment.transaction_id,
                "processed_at": payment.processed_at.isoformat() if payment.processed_at else None,
            } if payment else None,
        }

    async def bill_for_booking(self, booking_id: str, user: User) -> Dict[str, Any]:
        """Owner or admin"""
        booking = await BookingService(self.db).get_booking(booking_id)
        if booking.user_id != user.id and not is_admin(user.role):
            raise AuthorizationError("You can only access your own bills")
        return await self.build_bill(booking)

    async def user_bills(self, user: User) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(ExamBooking)
            .where(ExamBooking.user_id == user.id)
            .order_by(ExamBooking.created_at.desc())
        )
        return [await self.build_bill(b) for b in result.scalars().all()]

    async def all_bills(self, page: int = 1, limit: int = 20) -> Tuple[List[Dict[str, Any]], int]:
        total = (await self.db.execute(select(func.count(ExamBooking.id)))).scalar() or 0
        result = await self.db.execute(
            select(ExamBooking)
            .order_by(ExamBooking.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return [await self.build_bill(b) for b in result.scalars().all()], total

    async def bill_pdf(self, booking_id: str, user: User) -> Dict[str, Any]:
        bill = await self.bill_for_booking(booking_id, user)
        return {
            "content": render_bill_pdf(bill),
            "filename": f"{bill['billNumber']}.pdf",
        }
