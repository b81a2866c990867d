"""Beanie document models and Pydantic schemas."""
from academy.models.user import User, UserRole, UserOut
from academy.models.student import Student, Contact
from academy.models.payment import (
    Payment,
    PaymentStatus,
    ReminderBucket,
    REMINDER_OFFSETS,
    VerifyPaymentBody,
    BulkVerifyBody,
    ReminderRunBody,
    SendInvoicesBody,
)
from academy.models.charge import Charge, ChargeHandle, PaymentChargeBody

DOCUMENT_MODELS = [User, Student, Payment, Charge]

__all__ = [
    "User",
    "UserRole",
    "UserOut",
    "Student",
    "Contact",
    "Payment",
    "PaymentStatus",
    "ReminderBucket",
    "REMINDER_OFFSETS",
    "VerifyPaymentBody",
    "BulkVerifyBody",
    "ReminderRunBody",
    "SendInvoicesBody",
    "Charge",
    "ChargeHandle",
    "PaymentChargeBody",
    "DOCUMENT_MODELS",
]
