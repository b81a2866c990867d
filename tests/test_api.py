import httpx
import pytest

from academy.api.deps import create_access_token, get_password_hash
from academy.main import app
from academy.models import Payment, PaymentStatus, User, UserRole

CHARGES = "/orchestration/direct-charges"


@pytest.fixture
async def client(gateway, notifier):
    app.state.gateway = gateway
    app.state.notifier = notifier
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
async def admin(db):
    return await User(
        email="admin@academy.com",
        hashed_password=get_password_hash("s3cret-pass"),
        role=UserRole.ADMIN,
        full_name="Admin",
    ).insert()


@pytest.fixture
def auth(admin):
    return {"Authorization": f"Bearer {create_access_token(str(admin.id), admin.role.value)}"}


# -- broker --------------------------------------------------------------------


@pytest.mark.parametrize("method", ["GET", "POST"])
async def test_ping(client, method):
    resp = await client.request(method, "/api/ping")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert resp.headers["access-control-allow-origin"] == "*"


async def test_preflight_short_circuits(client):
    resp = await client.options("/api/flutterwave/token")
    assert resp.status_code == 200
    assert resp.json() == {}
    assert resp.headers["access-control-allow-origin"] == "*"


async def test_token_endpoint_uses_cache(client, session):
    first = await client.post("/api/flutterwave/token")
    second = await client.post("/api/flutterwave/token")
    assert first.status_code == second.status_code == 200
    assert first.json()["access_token"] == second.json()["access_token"] == "tok-1"
    assert len(session.calls_to("/token")) == 1


async def test_token_endpoint_relays_upstream_status(client, session):
    session.routes["/token"] = []
    session.add("/token", status=400, payload={"error": "invalid_request"}, reason="Bad Request")
    resp = await client.post("/api/flutterwave/token")
    assert resp.status_code == 400
    assert resp.json() == {"error": "invalid_request"}


async def test_direct_charge_proxied_verbatim(client, session):
    upstream = {"status": "success", "data": {"id": "chg_1", "status": "pending", "next_action": {"type": "payment_instruction"}}}
    session.add(CHARGES, payload=upstream)
    body = {"amount": 10, "currency": "GHS", "reference": "r1", "payment_method": {"type": "mobile_money"}}

    resp = await client.post("/api/flutterwave/direct-charges", json=body)

    assert resp.status_code == 200
    assert resp.json() == upstream
    assert session.calls_to(CHARGES)[0][2]["json"] == body


async def test_direct_charge_error(client, session):
    session.add(CHARGES, status=401, payload={"error": {"message": "Unauthorized"}})
    resp = await client.post("/api/flutterwave/direct-charges", json={"amount": 10})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}


async def test_direct_charge_rejects_non_json(client):
    resp = await client.post("/api/flutterwave/direct-charges", content=b"amount=10")
    assert resp.status_code == 400


async def test_charge_lookup(client, session):
    session.add("/charges/chg_1", payload={"data": {"id": "chg_1", "status": "succeeded"}})
    resp = await client.get("/api/flutterwave/charges/chg_1")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "succeeded"


async def test_charge_lookup_not_found(client, session):
    session.add("/charges/missing", status=404, payload={})
    resp = await client.get("/api/flutterwave/charges/missing")
    assert resp.status_code == 404
    assert "error" in resp.json()


# -- auth ----------------------------------------------------------------------


async def test_login_and_me(client, admin):
    resp = await client.post("/api/auth/login", json={"email": admin.email, "password": "s3cret-pass"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["role"] == "admin"


async def test_login_wrong_password(client, admin):
    resp = await client.post("/api/auth/login", json={"email": admin.email, "password": "nope"})
    assert resp.status_code == 401


async def test_tutor_reads_payments_but_cannot_change_them(client, db, make_payment):
    payment = await make_payment()
    tutor = await User(
        email="tutor@academy.com", hashed_password=get_password_hash("x"), role=UserRole.TUTOR, full_name="T"
    ).insert()
    assert (await client.get("/api/payments/")).status_code == 401
    headers = {"Authorization": f"Bearer {create_access_token(str(tutor.id), 'tutor')}"}

    assert (await client.get("/api/payments/", headers=headers)).status_code == 200
    assert (await client.get(f"/api/payments/{payment.id}", headers=headers)).status_code == 200
    assert (await client.post("/api/payments/generate-monthly", headers=headers)).status_code == 403
    verify = await client.post(
        f"/api/payments/{payment.id}/verify", json={"method": "CASH"}, headers=headers
    )
    assert verify.status_code == 403
    assert (await Payment.get(payment.id)).paid_amount == 0


# -- payments --------------------------------------------------------------------


async def test_verify_partial_then_full(client, auth, make_payment):
    payment = await make_payment(amount=300.0)
    url = f"/api/payments/{payment.id}/verify"

    resp = await client.post(url, json={"method": "BANK TRANSFER", "reference": "TXN1", "amount": 100}, headers=auth)
    assert resp.status_code == 200
    assert resp.json()["paid_amount"] == 100
    assert resp.json()["status"] == "pending"

    resp = await client.post(url, json={"method": "BANK TRANSFER", "reference": "TXN2"}, headers=auth)
    assert resp.json()["status"] == "completed"
    assert resp.json()["remaining_balance"] == 0

    resp = await client.post(url, json={"method": "CASH", "amount": 1}, headers=auth)
    assert resp.status_code == 400
    assert "error" in resp.json()


async def test_verify_requires_reference(client, auth, make_payment):
    payment = await make_payment()
    resp = await client.post(f"/api/payments/{payment.id}/verify", json={"method": "MOBILE MONEY"}, headers=auth)
    assert resp.status_code == 400
    assert (await Payment.get(payment.id)).paid_amount == 0


async def test_verify_unknown_payment(client, auth):
    resp = await client.post("/api/payments/64b7f0c2a1b2c3d4e5f60718/verify", json={"method": "CASH"}, headers=auth)
    assert resp.status_code == 404


async def test_list_filters_by_status(client, auth, make_payment):
    await make_payment()
    await make_payment(paid_amount=300.0, status=PaymentStatus.COMPLETED)
    resp = await client.get("/api/payments/", params={"status": "completed"}, headers=auth)
    assert resp.status_code == 200
    assert [p["status"] for p in resp.json()] == ["completed"]


async def test_generate_monthly_endpoint(client, auth, make_student):
    await make_student()
    resp = await client.post("/api/payments/generate-monthly", headers=auth)
    assert resp.status_code == 200
    assert resp.json()["total"] == 1


async def test_bulk_verify_endpoint(client, auth, make_payment):
    payments = [await make_payment(), await make_payment()]
    resp = await client.post(
        "/api/payments/bulk-verify",
        json={"payment_ids": [str(p.id) for p in payments], "method": "CASH"},
        headers=auth,
    )
    assert resp.json() == {"updated": 2, "failed": 0, "errors": []}


async def test_send_invoices_endpoint(client, auth, make_payment, notifier):
    payment = await make_payment()
    resp = await client.post(
        "/api/payments/send-invoices", json={"payment_ids": [str(payment.id)], "channel": "sms"}, headers=auth
    )
    assert resp.json() == {"success_count": 1, "fail_count": 0}
    assert notifier.sent[0]["channels"] == {"sms"}


async def test_reminders_endpoint(client, auth, db):
    resp = await client.post("/api/payments/reminders", json={}, headers=auth)
    assert resp.status_code == 200
    assert resp.json() == {"reminders_sent": 0, "total_payments": 0}


async def test_charge_and_status_endpoints(client, auth, session, make_payment):
    session.add(CHARGES, payload={"data": {"id": "chg_1", "status": "pending"}})
    session.add("/charges/chg_1", payload={"data": {"id": "chg_1", "status": "successful"}})
    payment = await make_payment(amount=300.0)
    body = {"phone_number": "0241234567", "network": "MTN"}

    first = await client.post(f"/api/payments/{payment.id}/charge", json=body, headers=auth)
    second = await client.post(f"/api/payments/{payment.id}/charge", json=body, headers=auth)
    assert first.status_code == 201
    assert first.json()["charge_id"] == second.json()["charge_id"] == "chg_1"
    assert len(session.calls_to(CHARGES)) == 1

    status = await client.get("/api/payments/charges/chg_1/status", headers=auth)
    assert status.json() == {"charge_id": "chg_1", "status": "successful"}
    assert (await Payment.get(payment.id)).status == PaymentStatus.COMPLETED


async def test_receipt_refused_for_open_payment(client, auth, make_payment):
    payment = await make_payment()
    resp = await client.get(f"/api/payments/{payment.id}/receipt", headers=auth)
    assert resp.status_code == 400


async def test_receipt_download(client, auth, make_payment):
    payment = await make_payment(paid_amount=300.0, status=PaymentStatus.COMPLETED, payment_reference="TXN9")
    resp = await client.get(f"/api/payments/{payment.id}/receipt", headers=auth)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF")


async def test_health(client):
    resp = await client.get("/health")
    assert resp.json()["status"] == "ok"
