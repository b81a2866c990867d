"""Canned email/SMS texts for reminders, invoices and payment receipts."""
from datetime import datetime
from typing import NamedTuple, Optional

from academy.config import settings
from academy.models.payment import Payment, ReminderBucket
from academy.models.student import Student


class Message(NamedTuple):
    subject: str
    body: str
    sms: str


def money(amount: float) -> str:
    return f"{settings.currency_symbol}{amount:,.2f}"


def month_label(dt: Optional[datetime]) -> str:
    return dt.strftime("%B %Y") if dt else ""


def due_label(dt: Optional[datetime]) -> str:
    return f"{dt.day} {dt.strftime('%B %Y')}" if dt else "N/A"


def reminder_message(bucket: ReminderBucket, payment: Payment, student: Optional[Student]) -> Message:
    name = student.name if student else "Student"
    greeting = student.contact().name if student else name
    outstanding = money(payment.remaining_balance or payment.amount)
    due = due_label(payment.due_date)
    package = payment.package_type or "Monthly Fee"
    academy = settings.academy_name
    instructions = settings.payment_instructions.strip()

    if bucket == ReminderBucket.THREE_DAYS_BEFORE:
        return Message(
            subject="Payment Reminder - Due in 3 Days",
            body=(
                f"Dear {greeting},\n\n"
                f"This is a friendly reminder that your monthly payment for {academy} is due in 3 days.\n\n"
                f"Payment Details:\n- Student: {name}\n- Package: {package}\n"
                f"- Amount Due: {outstanding}\n- Due Date: {due}\n\n"
                f"{instructions}\n\nThank you for your continued support!\n\nBest regards,\n{settings.academy_name}"
            ),
            sms=f"Reminder: Your payment of {outstanding} is due on {due}. Thank you!",
        )
    if bucket == ReminderBucket.DUE_DATE:
        return Message(
            subject="Payment Due Today",
            body=(
                f"Dear {greeting},\n\nYour monthly payment for {academy} is due today.\n\n"
                f"Amount: {outstanding}\nPackage: {package}\n\n"
                f"Please make your payment today to avoid overdue status.\n\n"
                f"{instructions}\n\nThank you!\n{settings.academy_name}"
            ),
            sms=f"Payment Due: {outstanding} for {academy} is due today. Please pay to avoid overdue status.",
        )
    if bucket == ReminderBucket.THREE_DAYS_AFTER:
        return Message(
            subject="Overdue Payment Notice",
            body=(
                f"Dear {greeting},\n\nWe notice that your payment of {outstanding} was due on {due} "
                f"but has not been received.\n\n"
                f"Please make your payment as soon as possible to keep your account in good standing.\n\n"
                f"{instructions}\n\nIf you have already paid, please disregard this notice and contact us "
                f"with payment confirmation.\n\nThank you for your prompt attention.\n{settings.academy_name}"
            ),
            sms=f"OVERDUE: Your payment of {outstanding} was due on {due}. Please pay as soon as possible.",
        )
    contact_line = f"\n\nContact: {settings.academy_contact_phone}" if settings.academy_contact_phone else ""
    return Message(
        subject="Urgent: Payment 7 Days Overdue",
        body=(
            f"Dear {greeting},\n\nYour payment of {outstanding} is now 7 days overdue. Please contact us "
            f"immediately to discuss payment or any difficulties you may be experiencing.\n\n"
            f"Outstanding Amount: {outstanding}\nDue Date: {due}\nDays Overdue: 7\n\n"
            f"We value your enrollment and want to work with you. Please reach out to us.{contact_line}\n\n"
            f"{settings.academy_name}"
        ),
        sms=f"URGENT: Your {outstanding} payment is 7 days overdue. Please contact us or pay immediately.",
    )


def payment_received_message(payment: Payment, student: Optional[Student], received: float) -> Message:
    name = student.name if student else "Student"
    greeting = student.contact().name if student else name
    balance = payment.remaining_balance
    if balance > 0:
        balance_line = f"Remaining Balance: {money(balance)}"
        sms_tail = f" Balance: {money(balance)}."
    else:
        balance_line = "Your payment is now complete."
        sms_tail = " Payment complete."
    reference_line = f"\n- Reference: {payment.payment_reference}" if payment.payment_reference else ""
    return Message(
        subject=f"Payment Received - {settings.academy_name}",
        body=(
            f"Dear {greeting},\n\nWe have received your payment. Thank you!\n\n"
            f"Payment Details:\n- Student: {name}\n- Package: {payment.package_type or 'N/A'}\n"
            f"- Amount Received: {money(received)}\n- Method: {payment.description or 'N/A'}"
            f"{reference_line}\n- Total Paid: {money(payment.paid_amount)} of {money(payment.amount)}\n\n"
            f"{balance_line}\n\nBest regards,\n{settings.academy_name}"
        ),
        sms=f"Dear {greeting}, we received {money(received)} for {name}.{sms_tail} Thank you!",
    )


def invoice_message(payment: Payment, student: Optional[Student]) -> Message:
    name = student.name if student else "Student"
    greeting = student.contact().name if student else name
    due = due_label(payment.due_date)
    amount_due = money(payment.remaining_balance)
    return Message(
        subject=f"Payment Invoice - {settings.academy_name}",
        body=(
            f"Dear {greeting},\n\nThis is a payment invoice for {settings.academy_name}.\n\n"
            f"Payment Details:\n- Student: {name}\n- Package: {payment.package_type or 'N/A'}\n"
            f"- Amount Due: {amount_due}\n- Due Date: {due}\n- Status: {payment.status.value}\n\n"
            f"{settings.payment_instructions.strip()}\n\n"
            f"Thank you for your continued support!\n\nBest regards,\n{settings.academy_name}"
        ),
        sms=(
            f"Dear {name}, your invoice for {month_label(payment.due_date) or 'this month'} has been generated. "
            f"Amount: {amount_due}. Due: {due}."
        ),
    )
