"""Enrolled students: package, monthly fee and contact details."""
from datetime import datetime
from typing import Optional

from beanie import Document, Indexed
from pydantic import BaseModel, Field


class Contact(BaseModel):
    """Who receives payment notifications for a student."""

    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class Student(Document):
    user_id: Indexed(str)
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    parent_name: Optional[str] = None
    parent_email: Optional[str] = None
    parent_phone: Optional[str] = None

    status: str = "active"  # active, inactive
    package_type: Optional[str] = None
    monthly_fee: Optional[float] = None
    discount_percentage: Optional[float] = None
    final_monthly_fee: Optional[float] = None

    payment_status: Optional[str] = None
    last_payment_date: Optional[datetime] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "students"
        use_state_management = True

    def contact(self) -> Contact:
        # Parent details win over the student's own
        return Contact(
            name=self.parent_name or self.name,
            email=self.parent_email or self.email,
            phone=self.parent_phone or self.phone,
        )
