from beanie import PydanticObjectId

from academy.errors import NotFoundError
from academy.models.payment import Payment
from academy.models.student import Student


def safe_object_id(value: str | None) -> PydanticObjectId | None:
    if not value:
        return None
    try:
        return PydanticObjectId(value)
    except Exception:
        return None


async def get_payment(payment_id: str) -> Payment:
    oid = safe_object_id(payment_id)
    payment = await Payment.get(oid) if oid else None
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


async def get_student(student_id: str | None) -> Student | None:
    oid = safe_object_id(student_id)
    return await Student.get(oid) if oid else None
