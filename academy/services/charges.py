"""Mobile-money charges tied to invoices: retry-safe initiation and confirmation."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pymongo.errors import DuplicateKeyError

from academy.errors import BalanceError, PaymentsError
from academy.models.charge import Charge, ChargeHandle
from academy.models.payment import Payment, PaymentStatus
from academy.services.gateway import FlutterwaveClient
from academy.services.lookup import get_payment, get_student, safe_object_id
from academy.services.notify import Notifier
from academy.services.reconcile import verify_payment

logger = logging.getLogger(__name__)

MOBILE_MONEY = "MOBILE MONEY"
CLOSED_CHARGE_STATUSES = {"failed", "cancelled", "voided", "timeout"}
SUCCESS_CHARGE_STATUSES = {"succeeded", "successful"}
INITIATING = "initiating"


def charge_reference(payment: Payment) -> str:
    """Deterministic per (payment, amount already paid): retries map to the same charge."""
    paid_minor = int(round((payment.paid_amount or 0.0) * 100))
    return f"PAY-{payment.id}-{paid_minor}"


def _handle_from_charge(charge: Charge) -> ChargeHandle:
    return ChargeHandle(charge_id=charge.charge_id, reference=charge.reference, status=charge.status)


async def start_payment_charge(
    client: FlutterwaveClient,
    payment_id: str,
    phone_number: str,
    network: str,
    currency: Optional[str] = None,
    email: Optional[str] = None,
) -> ChargeHandle:
    """Charge the outstanding balance of an invoice to a mobile-money wallet.

    A live charge already recorded for the same reference is returned instead
    of calling the gateway again. A closed (failed/cancelled) attempt gets a
    fresh ``-rN`` suffixed reference. The reference is claimed with an
    ``initiating`` row before the gateway call and released if that call fails.
    """
    payment = await get_payment(payment_id)
    if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED) or payment.remaining_balance <= 0:
        raise BalanceError("Payment has no outstanding balance to charge")

    base = charge_reference(payment)
    previous = await Charge.find(Charge.payment_id == str(payment.id)).to_list()
    attempts = [c for c in previous if c.reference == base or c.reference.startswith(f"{base}-r")]
    live = [c for c in attempts if (c.status or "").lower() not in CLOSED_CHARGE_STATUSES]
    if live:
        logger.info("Reusing charge %s for payment %s", live[-1].charge_id, payment.id)
        return _handle_from_charge(live[-1])
    reference = f"{base}-r{len(attempts)}" if attempts else base

    if not email:
        student = await get_student(payment.student_id)
        email = student.contact().email if student else None

    amount = payment.remaining_balance
    # claim the reference first; a concurrent request loses on the unique index
    charge = Charge(
        reference=reference,
        payment_id=str(payment.id),
        amount=amount,
        currency=currency or client.default_currency,
        network=network,
        phone_number=phone_number,
        customer_email=email,
        status=INITIATING,
    )
    try:
        await charge.insert()
    except DuplicateKeyError:
        existing = await Charge.find_one(Charge.reference == reference)
        logger.info("Charge %s for payment %s already in flight", reference, payment.id)
        return _handle_from_charge(existing)

    try:
        handle = await client.initiate_charge(amount, currency, phone_number, network, email, reference=reference)
    except Exception:
        await charge.delete()
        raise
    charge.charge_id = handle.charge_id
    charge.status = handle.status
    charge.updated_at = datetime.utcnow()
    await charge.save()
    logger.info("Charge %s initiated for payment %s (%s)", handle.charge_id, payment.id, reference)
    return handle


async def refresh_charge_status(
    client: FlutterwaveClient,
    charge_id: str,
    notifier: Optional[Notifier] = None,
) -> str:
    """Look up a charge and, on first success, record it against its invoice."""
    status = await client.verify_charge(charge_id)
    charge = await Charge.find_one(Charge.charge_id == charge_id)
    if not charge:
        return status

    charge.status = status
    charge.updated_at = datetime.utcnow()
    await charge.save()

    if status.lower() in SUCCESS_CHARGE_STATUSES and charge.payment_id and not charge.reconciled:
        await _reconcile_charge(charge, notifier)
    return status


async def _reconcile_charge(charge: Charge, notifier: Optional[Notifier]) -> None:
    oid = safe_object_id(charge.payment_id)
    payment = await Payment.get(oid) if oid else None
    if not payment:
        logger.warning("Charge %s points to missing payment %s", charge.charge_id, charge.payment_id)
        return
    amount = min(charge.amount, payment.remaining_balance)
    if amount > 0:
        try:
            await verify_payment(
                str(payment.id), MOBILE_MONEY, reference=charge.charge_id, amount=amount, notifier=notifier
            )
        except PaymentsError as e:
            logger.error("Could not reconcile charge %s: %s", charge.charge_id, e.message)
            return
    charge.reconciled = True
    await charge.save()
