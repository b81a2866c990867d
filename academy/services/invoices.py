"""Monthly invoice generation and invoice delivery."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from academy.errors import ValidationError
from academy.models.payment import Payment, PaymentStatus
from academy.models.student import Student
from academy.services.lookup import get_student, safe_object_id
from academy.services.messages import invoice_message
from academy.services.notify import ALL_CHANNELS, EMAIL, SMS, Notifier

logger = logging.getLogger(__name__)

DUE_DAY = 15
CHANNELS = {"email": (EMAIL,), "sms": (SMS,), "both": ALL_CHANNELS}


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """[first day of this month, first day of next month)."""
    start = datetime(now.year, now.month, 1)
    if now.month == 12:
        end = datetime(now.year + 1, 1, 1)
    else:
        end = datetime(now.year, now.month + 1, 1)
    return start, end


def build_monthly_payment(student: Student, now: datetime) -> Payment:
    fee = round(float(student.final_monthly_fee), 2)
    base_fee = student.monthly_fee if student.monthly_fee is not None else fee
    discount = round(base_fee * student.discount_percentage / 100, 2) if student.discount_percentage else 0.0
    due_date = datetime(now.year, now.month, DUE_DAY)
    return Payment(
        user_id=student.user_id,
        student_id=str(student.id),
        amount=fee,
        discount_amount=discount,
        package_type=student.package_type,
        status=PaymentStatus.PENDING,
        due_date=due_date,
        description=f"Monthly Fee — {student.package_type} — {due_date.strftime('%B %Y')}",
        created_at=now,
        updated_at=now,
    )


async def _billable_students() -> list[Student]:
    return await Student.find(
        {
            "status": "active",
            "package_type": {"$ne": None},
            "final_monthly_fee": {"$ne": None},
        }
    ).to_list()


async def payment_exists_for_month(student: Student, now: datetime) -> bool:
    start, end = month_bounds(now)
    existing = await Payment.find_one(
        {
            "student_id": str(student.id),
            "user_id": student.user_id,
            "created_at": {"$gte": start, "$lt": end},
        }
    )
    return existing is not None


async def generate_monthly_payments(now: Optional[datetime] = None) -> dict:
    """Create this month's pending invoice for every billable student.

    Safe to re-run within a month: students already invoiced are skipped.
    A failure for one student is logged and the batch continues.
    """
    now = now or datetime.utcnow()
    students = await _billable_students()
    logger.info("Generating monthly payments for %d students with packages", len(students))

    created = skipped = failed = 0
    for student in students:
        try:
            if await payment_exists_for_month(student, now):
                logger.info("Payment already exists this month for student %s", student.name)
                skipped += 1
                continue
            payment = build_monthly_payment(student, now)
            await payment.insert()
            student.payment_status = PaymentStatus.PENDING.value
            student.updated_at = now
            await student.save()
        except Exception:
            logger.exception("Error creating payment for student %s", student.name)
            failed += 1
            continue
        logger.info("Created payment for student %s", student.name)
        created += 1

    logger.info("Payment generation complete: %d created, %d skipped, %d failed", created, skipped, failed)
    return {"created": created, "skipped": skipped, "failed": failed, "total": len(students)}


async def send_invoices(notifier: Notifier, payment_ids: Iterable[str], channel: str = "both") -> dict:
    """Email and/or text an invoice summary for each payment."""
    channels = CHANNELS.get(channel)
    if channels is None:
        raise ValidationError(f"Unknown channel: {channel}")

    oids = [oid for oid in (safe_object_id(pid) for pid in payment_ids) if oid]
    payments = await Payment.find({"_id": {"$in": oids}}).to_list() if oids else []

    success_count = fail_count = 0
    for payment in payments:
        try:
            student = await get_student(payment.student_id)
            if not student:
                logger.error("Invoice for payment %s: student %s not found", payment.id, payment.student_id)
                fail_count += 1
                continue
            message = invoice_message(payment, student)
            result = await notifier.notify(
                student.contact(), message.subject, message.body, message.sms, channels=channels
            )
        except Exception:
            logger.exception("Failed to send invoice for payment %s", payment.id)
            fail_count += 1
            continue
        if result.attempted and not result.delivered:
            logger.error("Invoice for payment %s was not delivered on any channel", payment.id)
            fail_count += 1
        else:
            success_count += 1

    logger.info("Invoices sent: %d successful, %d failed", success_count, fail_count)
    return {"success_count": success_count, "fail_count": fail_count}
