"""Day-offset payment reminders, each bucket fired at most once per payment."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from academy.config import settings
from academy.models.payment import REMINDER_OFFSETS, Payment, PaymentStatus, ReminderBucket
from academy.services.lookup import get_payment, get_student
from academy.services.messages import reminder_message
from academy.services.notify import DeliveryResult, Notifier

logger = logging.getLogger(__name__)

OPEN_STATUSES = [PaymentStatus.PENDING.value, PaymentStatus.FAILED.value]


def days_until_due(payment: Payment, today: date) -> Optional[int]:
    if not payment.due_date:
        return None
    return (payment.due_date.date() - today).days


def decide_due_trigger(payment: Payment, today: date, force: bool = False) -> Optional[ReminderBucket]:
    """Bucket to fire today, or None. ``force`` ignores buckets already sent."""
    if payment.status not in (PaymentStatus.PENDING, PaymentStatus.FAILED):
        return None
    offset = days_until_due(payment, today)
    bucket = REMINDER_OFFSETS.get(offset) if offset is not None else None
    if bucket is None:
        return None
    if not force and (payment.reminder_sent or {}).get(bucket.value):
        return None
    return bucket


def apply_trigger(
    payment: Payment,
    bucket: ReminderBucket,
    delivery: DeliveryResult,
    now: datetime,
    retry_undelivered: bool = False,
) -> dict:
    """Field updates after a reminder attempt.

    The bucket is stamped whatever the delivery outcome, unless
    ``retry_undelivered`` is set and every attempted channel failed.
    A pending payment three days overdue becomes failed.
    """
    updates: dict = {}
    undelivered = delivery.attempted and not delivery.delivered
    if not (retry_undelivered and undelivered):
        reminder_sent = dict(payment.reminder_sent or {})
        reminder_sent[bucket.value] = now.isoformat()
        updates["reminder_sent"] = reminder_sent
    if bucket == ReminderBucket.THREE_DAYS_AFTER and payment.status == PaymentStatus.PENDING:
        updates["status"] = PaymentStatus.FAILED
    if updates:
        updates["updated_at"] = now
    return updates


async def _open_payments(payment_id: Optional[str]) -> list[Payment]:
    if payment_id:
        payment = await get_payment(payment_id)
        if payment.status.value not in OPEN_STATUSES or not payment.due_date:
            return []
        return [payment]
    return await Payment.find(
        {"status": {"$in": OPEN_STATUSES}, "due_date": {"$ne": None}}
    ).to_list()


async def send_payment_reminders(
    notifier: Notifier,
    payment_id: Optional[str] = None,
    force: bool = False,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Send today's due reminders for open payments (or just ``payment_id``)."""
    now = now or datetime.utcnow()
    today = today or now.date()
    payments = await _open_payments(payment_id)
    logger.info(
        "Checking %d open payments for reminders%s",
        len(payments),
        " (force)" if force else "",
    )

    reminders_sent = 0
    for payment in payments:
        bucket = decide_due_trigger(payment, today, force=force)
        if bucket is None:
            logger.debug(
                "Payment %s: no reminder due (days until due=%s)", payment.id, days_until_due(payment, today)
            )
            continue
        try:
            student = await get_student(payment.student_id)
            delivery = DeliveryResult()
            if student:
                message = reminder_message(bucket, payment, student)
                delivery = await notifier.notify(student.contact(), message.subject, message.body, message.sms)
            else:
                logger.warning("Payment %s has no student record, nothing to notify", payment.id)

            updates = apply_trigger(
                payment, bucket, delivery, now, retry_undelivered=settings.reminder_retry_undelivered
            )
            for field, value in updates.items():
                setattr(payment, field, value)
            await payment.save()
        except Exception:
            logger.exception("Reminder %s failed for payment %s", bucket.value, payment.id)
            continue

        if "reminder_sent" in updates:
            reminders_sent += 1
        logger.info(
            "Payment %s: %s reminder processed (email=%s, sms=%s)",
            payment.id,
            bucket.value,
            delivery.email,
            delivery.sms,
        )

    logger.info("Reminders sent: %d", reminders_sent)
    return {"reminders_sent": reminders_sent, "total_payments": len(payments)}
