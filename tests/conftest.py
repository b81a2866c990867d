import os

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import datetime
from typing import Optional

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from academy.models import DOCUMENT_MODELS, Payment, PaymentStatus, Student
from academy.services.gateway import FlutterwaveClient, TokenCache
from academy.services.notify import ALL_CHANNELS, DeliveryResult, Mailer, SmsSender


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status: int = 200, payload=None, reason: str = "OK"):
        self.status = status
        self.payload = payload if payload is not None else {}
        self.reason = reason

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def json(self, content_type=None):
        return self.payload

    async def text(self, errors: str = "strict") -> str:
        if isinstance(self.payload, bytes):
            return self.payload.decode("utf-8", errors=errors)
        return str(self.payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession: replies are queued per URL suffix."""

    def __init__(self):
        self.routes: dict[str, list[FakeResponse]] = {}
        self.calls: list[tuple[str, str, dict]] = []

    def add(self, url_suffix: str, status: int = 200, payload=None, reason: str = "OK") -> None:
        self.routes.setdefault(url_suffix, []).append(FakeResponse(status, payload, reason))

    def calls_to(self, url_suffix: str) -> list:
        return [c for c in self.calls if c[1].endswith(url_suffix)]

    def _reply(self, method: str, url: str, kwargs: dict) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        for suffix, queue in self.routes.items():
            if url.endswith(suffix):
                # the last queued reply repeats
                return queue.pop(0) if len(queue) > 1 else queue[0]
        raise AssertionError(f"Unexpected {method} {url}")

    def post(self, url, **kwargs):
        return self._reply("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._reply("GET", url, kwargs)

    async def close(self):
        pass


class FakeNotifier:
    def __init__(self, email: Optional[bool] = True, sms: Optional[bool] = True):
        self.email = email
        self.sms = sms
        self.sent: list[dict] = []

    async def notify(self, contact, subject, body, sms_text=None, channels=ALL_CHANNELS):
        channels = set(channels)
        self.sent.append({"to": contact, "subject": subject, "body": body, "sms": sms_text, "channels": channels})
        return DeliveryResult(
            email=self.email if "email" in channels else None,
            sms=self.sms if "sms" in channels and sms_text else None,
        )

    async def close(self):
        pass


class BrokenSms(SmsSender):
    """SMS channel whose transport fails with a non-notification error."""

    def __init__(self):
        super().__init__("https://sms.example.com/send", "k", "Academy")

    async def send_sms(self, to, text):
        raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")


class BrokenMailer(Mailer):
    def __init__(self):
        super().__init__("smtp.example.com", 587, "user", "pass")

    async def send_mail(self, to, subject, html_body, text=None):
        raise RuntimeError("connection reset")


TOKEN_URL = "https://idp.example.test/token"
BASE_URL = "https://gateway.example.test"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    s = FakeSession()
    s.add("/token", payload={"access_token": "tok-1", "expires_in": 300})
    return s


@pytest.fixture
def gateway(clock, session):
    return FlutterwaveClient(
        client_id="client",
        client_secret="secret",
        token_url=TOKEN_URL,
        base_url=BASE_URL,
        session=session,
        token_cache=TokenCache(clock=clock),
    )


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    await init_beanie(database=client["academy_test"], document_models=DOCUMENT_MODELS)
    yield client["academy_test"]


@pytest.fixture
def make_student(db):
    async def _make(**overrides) -> Student:
        data = {
            "user_id": "tenant-1",
            "name": "Ama Mensah",
            "email": "ama@example.com",
            "phone": "233200000001",
            "parent_name": "Kofi Mensah",
            "parent_email": "kofi@example.com",
            "parent_phone": "233200000002",
            "package_type": "Piano Weekly",
            "monthly_fee": 400.0,
            "discount_percentage": 25.0,
            "final_monthly_fee": 300.0,
        }
        data.update(overrides)
        return await Student(**data).insert()

    return _make


@pytest.fixture
def make_payment(db, make_student):
    async def _make(student: Optional[Student] = None, **overrides) -> Payment:
        student = student or await make_student()
        data = {
            "user_id": student.user_id,
            "student_id": str(student.id),
            "amount": 300.0,
            "package_type": student.package_type,
            "status": PaymentStatus.PENDING,
            "due_date": datetime(2026, 3, 15),
            "created_at": datetime(2026, 3, 1),
        }
        data.update(overrides)
        return await Payment(**data).insert()

    return _make
