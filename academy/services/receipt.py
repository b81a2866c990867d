"""Payment receipt PDF (ReportLab, A5) and S3 storage."""
import io
import logging
import uuid
from datetime import datetime
from typing import Optional

from academy.config import settings
from academy.errors import ValidationError
from academy.models.payment import Payment, PaymentStatus
from academy.services.lookup import get_student
from academy.services.s3 import upload_receipt_to_s3

logger = logging.getLogger(__name__)

# Receipt context (student / parent info for the header)
ReceiptContext = Optional[dict]


def _amount(value: float) -> str:
    # Standard PDF fonts have no cedi glyph
    return f"{settings.flutterwave_currency} {value:,.2f}"


def ensure_receiptable(payment: Payment) -> None:
    if payment.status != PaymentStatus.COMPLETED:
        raise ValidationError("Receipt can only be generated for completed payments")


def receipt_number(payment: Payment) -> str:
    return str(payment.id or "")[-8:].upper() or "-"


async def receipt_context(payment: Payment) -> dict:
    student = await get_student(payment.student_id)
    if not student:
        return {"student_name": "N/A"}
    return {
        "student_name": student.name,
        "student_email": student.email,
        "student_phone": student.phone,
        "parent_name": student.parent_name,
        "parent_email": student.parent_email,
        "parent_phone": student.parent_phone,
    }


def generate_receipt_pdf_bytes(payment: Payment, context: ReceiptContext = None) -> bytes | None:
    """
    Build the receipt with ReportLab.

    Layout (A5 portrait):
      - Header band: academy name and "PAYMENT RECEIPT".
      - Receipt # / Date / Status box.
      - Student (and parent/guardian when present) details.
      - Table: Description | Amount, then Discount, Amount Paid rows.
      - Method / reference line, then footer with academy address.
    """
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A5
    from reportlab.lib.units import mm
    from reportlab.pdfgen import canvas
    from reportlab.platypus import Table, TableStyle

    ctx = context or {}
    try:
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=A5)
        w, h = A5
        margin_x = 10 * mm
        line_h = 6 * mm
        border_color = colors.HexColor("#707070")
        accent = colors.HexColor("#10b981")

        # === Header band ===
        band_h = 22 * mm
        c.setFillColor(accent)
        c.rect(0, h - band_h, w, band_h, stroke=0, fill=1)
        c.setFillColor(colors.white)
        c.setFont("Helvetica-Bold", 15)
        c.drawCentredString(w / 2, h - 10 * mm, "PAYMENT RECEIPT")
        c.setFont("Helvetica", 9)
        c.drawCentredString(w / 2, h - 16 * mm, settings.academy_name[:70])
        c.setFillColor(colors.black)
        y = h - band_h - 8 * mm

        # === Receipt box ===
        paid_at = payment.payment_date or payment.created_at or datetime.utcnow()
        c.setStrokeColor(border_color)
        c.setLineWidth(0.5)
        box_h = 14 * mm
        c.rect(margin_x, y - box_h, w - 2 * margin_x, box_h, stroke=1, fill=0)
        c.setFont("Helvetica-Bold", 9)
        c.drawString(margin_x + 3 * mm, y - 5 * mm, "Receipt No:")
        c.drawString(margin_x + 3 * mm, y - 11 * mm, "Status:")
        c.drawString(w / 2, y - 5 * mm, "Date:")
        c.setFont("Helvetica", 9)
        c.drawString(margin_x + 25 * mm, y - 5 * mm, receipt_number(payment))
        c.drawString(w / 2 + 12 * mm, y - 5 * mm, paid_at.strftime("%d/%m/%Y"))
        c.setFillColor(accent)
        c.drawString(margin_x + 25 * mm, y - 11 * mm, "PAID")
        c.setFillColor(colors.black)
        y -= box_h + 8 * mm

        # === Student / parent ===
        def section(title: str, rows: list[tuple[str, Optional[str]]]) -> None:
            nonlocal y
            c.setFont("Helvetica-Bold", 11)
            c.drawString(margin_x, y, title)
            y -= line_h
            for label, value in rows:
                if not value:
                    continue
                c.setFont("Helvetica-Bold", 9)
                c.drawString(margin_x, y, f"{label}:")
                c.setFont("Helvetica", 9)
                c.drawString(margin_x + 20 * mm, y, str(value)[:60])
                y -= 5 * mm
            y -= 3 * mm

        section(
            "Student Information",
            [
                ("Name", ctx.get("student_name") or "N/A"),
                ("Email", ctx.get("student_email")),
                ("Phone", ctx.get("student_phone")),
            ],
        )
        if ctx.get("parent_name"):
            section(
                "Parent/Guardian",
                [
                    ("Name", ctx.get("parent_name")),
                    ("Email", ctx.get("parent_email")),
                    ("Phone", ctx.get("parent_phone")),
                ],
            )

        # === Amounts table ===
        data = [
            ["Description", "Amount"],
            [payment.package_type or "Monthly Fee", _amount(payment.amount)],
        ]
        if payment.discount_amount:
            data.append(["Discount applied", _amount(payment.discount_amount)])
        data.append(["Amount Paid", _amount(payment.paid_amount)])
        table_width = w - 2 * margin_x
        table = Table(data, colWidths=[table_width * 0.65, table_width * 0.35])
        table.setStyle(
            TableStyle(
                [
                    ("GRID", (0, 0), (-1, -1), 0.5, border_color),
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#e0e0e0")),
                    ("ALIGN", (1, 1), (1, -1), "RIGHT"),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                ]
            )
        )
        _, th = table.wrapOn(c, table_width, h)
        table.drawOn(c, margin_x, y - th)
        y -= th + 6 * mm

        # === Method / reference ===
        c.setFont("Helvetica", 9)
        c.drawString(margin_x, y, f"For: {(payment.description or 'N/A')[:60]}")
        if payment.payment_reference:
            y -= 5 * mm
            c.drawString(margin_x, y, f"Reference: {payment.payment_reference[:50]}")

        # === Footer ===
        c.setFont("Helvetica", 8)
        c.drawCentredString(w / 2, 14 * mm, "Thank you for your payment!")
        if settings.academy_address:
            c.drawCentredString(w / 2, 9 * mm, settings.academy_address.replace("\n", " ")[:100])
        c.save()
        return buf.getvalue()
    except Exception as e:
        logger.warning("ReportLab PDF failed: %s", e)
        return None


async def generate_receipt(payment: Payment) -> str | None:
    """Render the receipt, upload it to S3 and remember the URL. Returns the URL or None."""
    ensure_receiptable(payment)
    ctx = await receipt_context(payment)
    pdf_bytes = generate_receipt_pdf_bytes(payment, ctx)
    if not pdf_bytes:
        return None
    key = f"receipts/{payment.student_id}/{payment.id}/{uuid.uuid4().hex}.pdf"
    try:
        url = await upload_receipt_to_s3(key, pdf_bytes)
    except Exception as e:
        logger.warning("S3 upload failed: %s", e)
        return None
    payment.receipt_s3_key = key
    payment.receipt_url = url
    await payment.save()
    return url
