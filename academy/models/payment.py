"""Monthly fee payments: balance bookkeeping, reminder buckets, receipts."""
from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ReminderBucket(str, Enum):
    THREE_DAYS_BEFORE = "three_days_before"
    DUE_DATE = "due_date"
    THREE_DAYS_AFTER = "three_days_after"
    SEVEN_DAYS_AFTER = "seven_days_after"


# Day offset (due_date - today) -> bucket that fires on that day
REMINDER_OFFSETS: dict[int, ReminderBucket] = {
    3: ReminderBucket.THREE_DAYS_BEFORE,
    0: ReminderBucket.DUE_DATE,
    -3: ReminderBucket.THREE_DAYS_AFTER,
    -7: ReminderBucket.SEVEN_DAYS_AFTER,
}

CASH = "CASH"


class Payment(Document):
    """One invoice for a student; created once per calendar month."""

    user_id: Indexed(str)  # tenant / owning academy account
    student_id: Indexed(str)
    amount: float
    paid_amount: float = 0.0
    discount_amount: float = 0.0
    package_type: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    due_date: Optional[datetime] = None
    payment_date: Optional[datetime] = None
    description: Optional[str] = None  # payment method label once verified
    payment_reference: Optional[str] = None
    reminder_sent: dict[str, str] = Field(default_factory=dict)  # bucket -> ISO timestamp
    receipt_s3_key: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "payments"
        use_state_management = True

    @property
    def remaining_balance(self) -> float:
        return round(max(0.0, self.amount - (self.paid_amount or 0.0)), 2)


class VerifyPaymentBody(BaseModel):
    method: str
    reference: Optional[str] = None
    amount: Optional[float] = None  # partial amount; omit to settle the full balance


class BulkVerifyBody(BaseModel):
    payment_ids: list[str]
    method: str
    reference: Optional[str] = None


class ReminderRunBody(BaseModel):
    payment_id: Optional[str] = None
    force: bool = False


class SendInvoicesBody(BaseModel):
    payment_ids: list[str]
    channel: Literal["email", "sms", "both"] = "both"


def serialize_payment(p: Payment) -> dict:
    return {
        "id": str(p.id),
        "user_id": p.user_id,
        "student_id": p.student_id,
        "amount": p.amount,
        "paid_amount": p.paid_amount,
        "remaining_balance": p.remaining_balance,
        "discount_amount": p.discount_amount,
        "package_type": p.package_type,
        "status": p.status.value,
        "due_date": p.due_date.isoformat() if p.due_date else None,
        "payment_date": p.payment_date.isoformat() if p.payment_date else None,
        "description": p.description,
        "payment_reference": p.payment_reference,
        "reminder_sent": p.reminder_sent,
        "receipt_url": p.receipt_url,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }
