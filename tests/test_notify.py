import pytest

from academy.errors import NotificationError
from academy.models import Contact
from academy.services.notify import EMAIL, SMS, Mailer, MailResult, Notifier, SmsSender, text_to_html

from conftest import BrokenMailer, BrokenSms, FakeSession

SMS_URL = "https://sms.example.com/send"


class RecordingMailer(Mailer):
    def __init__(self, success=True):
        super().__init__("smtp.example.com", 587, "user", "pass word")
        self.success = success
        self.sent = []

    async def send_mail(self, to, subject, html_body, text=None):
        self.sent.append((to, subject))
        return MailResult(success=self.success, error=None if self.success else "refused")


def _sms(session, key="k"):
    return SmsSender(SMS_URL, key, "Academy", session=session)


def test_password_spaces_stripped():
    assert Mailer("h", 587, "u", "abcd efgh ijkl").password == "abcdefghijkl"


async def test_unconfigured_mailer_reports_failure():
    result = await Mailer("h", 587, "", "").send_mail("a@b.com", "s", "<p>x</p>")
    assert not result.success


async def test_sms_query_parameters():
    session = FakeSession()
    session.add("/send", payload="OK")
    await _sms(session).send_sms("233200000001", "Hello")
    _, url, kwargs = session.calls[0]
    assert url == SMS_URL
    assert kwargs["params"] == {"key": "k", "to": "233200000001", "type": "0", "text": "Hello", "sender": "Academy"}


async def test_sms_error_status():
    session = FakeSession()
    session.add("/send", status=500, payload="boom", reason="Server Error")
    with pytest.raises(NotificationError):
        await _sms(session).send_sms("233200000001", "Hello")


async def test_notify_uses_both_channels():
    session = FakeSession()
    session.add("/send", payload="OK")
    mailer = RecordingMailer()
    notifier = Notifier(mailer, _sms(session))

    result = await notifier.notify(Contact(name="Kofi", email="k@x.com", phone="2332"), "Subj", "Body", "Text")

    assert (result.email, result.sms) == (True, True)
    assert mailer.sent == [("k@x.com", "Subj")]
    assert result.delivered


async def test_notify_skips_missing_details():
    session = FakeSession()
    notifier = Notifier(RecordingMailer(), _sms(session, key=""))
    result = await notifier.notify(Contact(name="Kofi"), "Subj", "Body", "Text")
    assert (result.email, result.sms) == (None, None)
    assert not result.attempted
    assert session.calls == []


async def test_notify_channel_failures_are_reported_not_raised():
    session = FakeSession()
    session.add("/send", status=401, payload="bad key")
    notifier = Notifier(RecordingMailer(success=False), _sms(session))
    result = await notifier.notify(
        Contact(name="Kofi", email="k@x.com", phone="2332"), "Subj", "Body", "Text", channels=(EMAIL, SMS)
    )
    assert (result.email, result.sms) == (False, False)
    assert result.attempted and not result.delivered


def test_text_to_html_escapes():
    assert text_to_html("a < b\nc") == "a &lt; b<br>c"


async def test_sms_body_that_is_not_utf8():
    session = FakeSession()
    session.add("/send", payload=b"\xff\xfe ok")
    await _sms(session).send_sms("233200000001", "Hello")


async def test_unexpected_channel_errors_become_failures():
    notifier = Notifier(BrokenMailer(), BrokenSms())
    result = await notifier.notify(Contact(name="Kofi", email="k@x.com", phone="2332"), "Subj", "Body", "Text")
    assert (result.email, result.sms) == (False, False)
