"""Payments: monthly invoices, verification, reminders, charges, receipts."""
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response

from academy.api.deps import AdminOnly, Gateway, NotifierDep, StaffOnly
from academy.models.charge import PaymentChargeBody
from academy.models.payment import (
    BulkVerifyBody,
    Payment,
    PaymentStatus,
    ReminderRunBody,
    SendInvoicesBody,
    VerifyPaymentBody,
    serialize_payment,
)
from academy.services.charges import refresh_charge_status, start_payment_charge
from academy.services.invoices import generate_monthly_payments, send_invoices
from academy.services.lookup import get_payment
from academy.services.receipt import (
    ensure_receiptable,
    generate_receipt,
    generate_receipt_pdf_bytes,
    receipt_context,
)
from academy.services.reconcile import bulk_verify_payments, verify_payment
from academy.services.reminders import send_payment_reminders

router = APIRouter()


@router.get("/")
async def list_payments(
    user: StaffOnly,
    student_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
):
    query = {}
    if student_id:
        query["student_id"] = student_id
    if status:
        query["status"] = status.value
    items = await Payment.find(query).sort("-created_at").to_list()
    return [serialize_payment(p) for p in items]


@router.post("/generate-monthly")
async def generate_monthly(user: AdminOnly):
    return await generate_monthly_payments()


@router.get("/{payment_id}")
async def get_one(payment_id: str, user: StaffOnly):
    return serialize_payment(await get_payment(payment_id))


@router.post("/{payment_id}/verify")
async def verify(payment_id: str, body: VerifyPaymentBody, user: AdminOnly, notifier: NotifierDep):
    payment = await verify_payment(
        payment_id, body.method, reference=body.reference, amount=body.amount, notifier=notifier
    )
    return serialize_payment(payment)


@router.post("/bulk-verify")
async def bulk_verify(body: BulkVerifyBody, user: AdminOnly, notifier: NotifierDep):
    return await bulk_verify_payments(body.payment_ids, body.method, reference=body.reference, notifier=notifier)


@router.post("/reminders")
async def run_reminders(body: ReminderRunBody, user: AdminOnly, notifier: NotifierDep):
    return await send_payment_reminders(notifier, payment_id=body.payment_id, force=body.force)


@router.post("/send-invoices")
async def send_invoice_batch(body: SendInvoicesBody, user: AdminOnly, notifier: NotifierDep):
    return await send_invoices(notifier, body.payment_ids, body.channel)


@router.post("/{payment_id}/charge", status_code=201)
async def charge(payment_id: str, body: PaymentChargeBody, user: AdminOnly, gateway: Gateway):
    handle = await start_payment_charge(
        gateway,
        payment_id,
        body.phone_number,
        body.network,
        currency=body.currency,
        email=body.email,
    )
    return handle.model_dump(exclude={"raw"})


@router.get("/charges/{charge_id}/status")
async def charge_status(charge_id: str, user: AdminOnly, gateway: Gateway, notifier: NotifierDep):
    status = await refresh_charge_status(gateway, charge_id, notifier=notifier)
    return {"charge_id": charge_id, "status": status}


@router.post("/{payment_id}/generate-receipt")
async def create_receipt(payment_id: str, user: AdminOnly):
    """Render the receipt and upload it to S3. Returns receipt_url or null (use GET /receipt to download)."""
    payment = await get_payment(payment_id)
    receipt_url = await generate_receipt(payment)
    return {"receipt_url": receipt_url or payment.receipt_url}


@router.get("/{payment_id}/receipt")
async def download_receipt(payment_id: str, user: AdminOnly):
    payment = await get_payment(payment_id)
    ensure_receiptable(payment)
    pdf_bytes = generate_receipt_pdf_bytes(payment, await receipt_context(payment))
    if not pdf_bytes:
        raise HTTPException(status_code=503, detail="Receipt generation failed")
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="receipt-{payment_id}.pdf"'},
    )
