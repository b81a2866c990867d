"""Mobile-money charges submitted through the payment gateway."""
from datetime import datetime
from typing import Any, Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class Charge(Document):
    """Record of an initiated charge; the reference de-duplicates retries."""

    reference: Indexed(str, unique=True)
    payment_id: Optional[str] = None
    charge_id: Optional[str] = None  # unset while the gateway call is in flight
    amount: float
    currency: str
    network: str
    phone_number: str
    customer_email: Optional[str] = None
    status: Optional[str] = None
    reconciled: bool = False  # success already applied to the invoice
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "charges"
        use_state_management = True


class ChargeHandle(BaseModel):
    charge_id: Optional[str] = None
    reference: Optional[str] = None
    status: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


class PaymentChargeBody(BaseModel):
    phone_number: str
    network: str
    currency: Optional[str] = None
    email: Optional[str] = None
