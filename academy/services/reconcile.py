"""Payment verification: instalment bookkeeping, completion, receipt notifications."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from academy.errors import BalanceError, PaymentsError, ValidationError
from academy.models.payment import CASH, Payment, PaymentStatus
from academy.models.student import Student
from academy.services.lookup import get_payment, get_student
from academy.services.messages import payment_received_message
from academy.services.notify import Notifier

logger = logging.getLogger(__name__)


def validate_method_reference(method: str | None, reference: str | None) -> tuple[str, Optional[str]]:
    """Every method except cash needs an external transaction reference."""
    method = (method or "").strip()
    if not method:
        raise ValidationError("Payment method is required")
    reference = (reference or "").strip() or None
    if method.upper() != CASH and not reference:
        raise ValidationError(f"A transaction reference is required for {method} payments")
    return method, reference


def apply_payment(
    payment: Payment,
    amount: Optional[float],
    method: str,
    reference: Optional[str],
    now: datetime,
) -> tuple[float, dict]:
    """Compute the field updates for receiving ``amount`` (None settles the balance).

    Returns (amount received, updates). Does not touch ``payment``.
    """
    if payment.status == PaymentStatus.REFUNDED:
        raise ValidationError("Refunded payments cannot be verified")
    remaining = payment.remaining_balance
    if remaining <= 0:
        raise BalanceError("Payment is already fully paid")
    if amount is None:
        received = remaining
    else:
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than zero")
        received = round(amount, 2)
        if received > remaining:
            raise BalanceError(f"Amount {received:.2f} exceeds the remaining balance of {remaining:.2f}")

    total_paid = round((payment.paid_amount or 0.0) + received, 2)
    updates = {
        "paid_amount": total_paid,
        "payment_date": now,
        "description": method,
        "payment_reference": reference,
        "updated_at": now,
    }
    if total_paid >= payment.amount:
        updates["status"] = PaymentStatus.COMPLETED
    return received, updates


async def _notify_received(notifier: Notifier, payment: Payment, student: Optional[Student], received: float) -> None:
    if not student:
        logger.warning("Payment %s has no student record, skipping notification", payment.id)
        return
    message = payment_received_message(payment, student, received)
    result = await notifier.notify(student.contact(), message.subject, message.body, message.sms)
    if result.attempted and not result.delivered:
        logger.error("Payment notification for %s was not delivered on any channel", payment.id)


async def verify_payment(
    payment_id: str,
    method: str,
    reference: Optional[str] = None,
    amount: Optional[float] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> Payment:
    """Record a payment against an invoice.

    ``amount`` is the instalment just received; omit it to settle the remaining
    balance. Status flips to completed only once the invoice is fully paid.
    Notifications are best-effort and sent after the write.
    """
    method, reference = validate_method_reference(method, reference)
    if amount is not None and amount <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    payment = await get_payment(payment_id)
    now = now or datetime.utcnow()
    received, updates = apply_payment(payment, amount, method, reference, now)
    for field, value in updates.items():
        setattr(payment, field, value)
    await payment.save()
    logger.info(
        "Payment %s received %.2f via %s (paid %.2f of %.2f, status %s)",
        payment.id,
        received,
        method,
        payment.paid_amount,
        payment.amount,
        payment.status.value,
    )

    student = await get_student(payment.student_id)
    if student:
        student.last_payment_date = now
        if payment.status == PaymentStatus.COMPLETED:
            student.payment_status = PaymentStatus.COMPLETED.value
        student.updated_at = now
        await student.save()

    if notifier:
        await _notify_received(notifier, payment, student, received)
    return payment


async def bulk_verify_payments(
    payment_ids: list[str],
    method: str,
    reference: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> dict:
    """Settle each payment in full; one failure does not stop the batch."""
    method, reference = validate_method_reference(method, reference)
    updated = 0
    errors: list[dict] = []
    for payment_id in payment_ids:
        try:
            await verify_payment(payment_id, method, reference, notifier=notifier, now=now)
            updated += 1
        except PaymentsError as e:
            logger.warning("Bulk verify skipped payment %s: %s", payment_id, e.message)
            errors.append({"payment_id": payment_id, "error": e.message})
        except Exception as e:
            logger.exception("Bulk verify failed for payment %s", payment_id)
            errors.append({"payment_id": payment_id, "error": str(e)})
    return {"updated": updated, "failed": len(errors), "errors": errors}
