"""
Unit Tests for billing, booking window, certificate and analytics helpers
"""
from datetime import datetime, timedelta
from types import SimpleNamespace

from app.services.analytics_service import month_starts, score_distribution
from app.services.billing_service import bill_number, render_bill_pdf
from app.services.booking_service import booking_window_reason
from app.services.certificate_service import (
    generate_certificate_number,
    generate_certificate_filename,
    render_certificate_pdf,
)


def sample_bill(paid: bool = False) -> dict:
    bill = {
        "billNumber": "BILL-20260101-ABCDEF12",
        "billDate": "2026-01-01T10:00:00",
        "dueDate": "2026-01-08T10:00:00",
        "status": "PAID" if paid else "PENDING",
        "booking": {
            "id": "booking-1",
            "scheduled_at": "2026-01-05T09:00:00",
            "status": "CONFIRMED",
            "attempts_allowed": 2,
        },
        "exam": {"id": "exam-1", "title": "Accounting <Mock> & Review", "category": "Accounting", "duration": 60},
        "customer": {"id": "user-1", "name": "Ada Lovelace", "email": "ada@example.com", "phone": None},
        "amount": {"subtotal": 1250.5, "tax": 0.0, "total": 1250.5, "currency": "USD"},
        "payment": None,
    }
    if paid:
        bill["payment"] = {
            "id": "payment-1",
            "amount": 1250.5,
            "payment_method": "CASH",
            "status": "COMPLETED",
            "processed_at": "2026-01-02T11:00:00",
        }
    return bill


class TestBillNumber:

    def test_format_is_stable(self):
        booking = SimpleNamespace(
            id="abcdef12-3456-7890-abcd-ef1234567890",
            created_at=datetime(2026, 3, 4, 12, 0),
        )

        assert bill_number(booking) == "BILL-20260304-ABCDEF12"
        assert bill_number(booking) == bill_number(booking)


class TestBookingWindow:

    def exam(self, start=None, end=None):
        return SimpleNamespace(scheduled_start=start, scheduled_end=end)

    def test_open_window(self):
        assert booking_window_reason(self.exam(), datetime(2026, 1, 1)) is None

    def test_not_yet_open(self):
        now = datetime(2026, 1, 1)

        reason = booking_window_reason(self.exam(start=now + timedelta(days=2, hours=3)), now)

        assert reason == "Exam will be available for booking in 3 days"

    def test_closed(self):
        now = datetime(2026, 1, 1)

        assert booking_window_reason(self.exam(end=now - timedelta(minutes=1)), now) == "Exam booking period has ended"


class TestCertificateHelpers:

    def test_certificate_number_format(self):
        number = generate_certificate_number()

        assert number.startswith("CERT-")
        assert len(number.split("-")[2]) == 8

    def test_filename_is_sanitized(self):
        filename = generate_certificate_filename("CERT-20260101-ABCDEF12", "Ada O'Brien / Lovelace")

        assert filename == "CERTIFICATE_CERT-20260101-ABCDEF12_Ada_OBrien__Lovelace.pdf"


class TestPdfRendering:

    def test_certificate_pdf(self):
        content = render_certificate_pdf({
            "certificate_number": "CERT-20260101-ABCDEF12",
            "student_name": "Ada Lovelace",
            "exam_title": "Accounting Fundamentals",
            "category": "Accounting",
            "percentage": 87.5,
            "issued_at": datetime(2026, 1, 1),
            "expires_at": datetime(2027, 1, 1),
        })

        assert content.startswith(b"%PDF")

    def test_unpaid_bill_pdf(self):
        assert render_bill_pdf(sample_bill()).startswith(b"%PDF")

    def test_paid_bill_pdf(self):
        assert render_bill_pdf(sample_bill(paid=True)).startswith(b"%PDF")


class TestAnalyticsHelpers:

    def test_month_starts_cross_year(self):
        starts = month_starts(datetime(2026, 2, 15), 3)

        assert starts == [datetime(2025, 12, 1), datetime(2026, 1, 1), datetime(2026, 2, 1)]

    def test_score_distribution_buckets(self):
        buckets = score_distribution([5, 15, 15, 99.9, 100, None])

        counts = {b["range"]: b["count"] for b in buckets}
        assert counts["0-10"] == 2
        assert counts["10-20"] == 2
        assert counts["90-100"] == 2
        assert sum(counts.values()) == 6
