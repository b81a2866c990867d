"""Email (SMTP) and SMS delivery. Best-effort: failures are logged, not raised."""
from __future__ import annotations

import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Iterable, Optional

import aiohttp
from pydantic import BaseModel

from academy.config import settings
from academy.errors import NotificationError
from academy.models.student import Contact

logger = logging.getLogger(__name__)

EMAIL = "email"
SMS = "sms"
ALL_CHANNELS = (EMAIL, SMS)


class MailResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class DeliveryResult(BaseModel):
    """Per-channel outcome: True sent, False failed, None not attempted."""

    email: Optional[bool] = None
    sms: Optional[bool] = None

    @property
    def attempted(self) -> bool:
        return self.email is not None or self.sms is not None

    @property
    def delivered(self) -> bool:
        return bool(self.email) or bool(self.sms)


def text_to_html(body: str) -> str:
    return html.escape(body).replace("\n", "<br>")


class Mailer:
    def __init__(self, host: str, port: int, user: str, password: str, sender: str = ""):
        self.host = host
        self.port = port
        self.user = user
        self.password = password.replace(" ", "")  # app passwords are often pasted with spaces
        self.sender = sender or user

    @classmethod
    def from_settings(cls) -> "Mailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.mail_from,
        )

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def _send_sync(self, to: str, subject: str, html_body: str, text: Optional[str]) -> str:
        msg = MIMEMultipart("alternative")
        msg["From"] = f"{settings.academy_name} <{self.sender}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        if text:
            msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        server = smtplib.SMTP(self.host, self.port, timeout=15)
        try:
            server.starttls()
            server.login(self.user, self.password)
            server.send_message(msg)
        finally:
            server.quit()
        return msg["Message-ID"]

    async def send_mail(self, to: str, subject: str, html_body: str, text: Optional[str] = None) -> MailResult:
        if not self.configured:
            return MailResult(success=False, error="SMTP credentials not configured")
        try:
            message_id = await asyncio.to_thread(self._send_sync, to, subject, html_body, text)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Mail to %s failed: %s", to, e)
            return MailResult(success=False, error=str(e) or "Mail sending failed")
        return MailResult(success=True, message_id=message_id)


class SmsSender:
    """HTTP GET SMS gateway (key, to, type, text, sender query parameters)."""

    def __init__(self, api_url: str, api_key: str, sender_id: str, session=None, timeout: float = 30.0):
        self.api_url = api_url
        self.api_key = api_key
        self.sender_id = sender_id
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, session=None) -> "SmsSender":
        return cls(
            api_url=settings.sms_api_url,
            api_key=settings.sms_api_key,
            sender_id=settings.sms_sender_id,
            session=session,
            timeout=settings.http_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def send_sms(self, to: str, text: str) -> None:
        if not self.configured:
            raise NotificationError("SMS API key not configured")
        params = {"key": self.api_key, "to": to, "type": "0", "text": text, "sender": self.sender_id}
        try:
            async with self._get_session().get(self.api_url, params=params) as resp:
                body = await resp.text(errors="replace")
                if not resp.ok:
                    raise NotificationError(f"SMS API error ({resp.status}): {body[:200]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NotificationError(f"SMS request failed: {e}") from e
        logger.info("SMS sent to %s", to)


class Notifier:
    """Fans a message out to a contact's available channels."""

    def __init__(self, mailer: Mailer, sms: SmsSender):
        self.mailer = mailer
        self.sms = sms

    @classmethod
    def from_settings(cls) -> "Notifier":
        return cls(Mailer.from_settings(), SmsSender.from_settings())

    async def close(self) -> None:
        await self.sms.close()

    async def notify(
        self,
        contact: Contact,
        subject: str,
        body: str,
        sms_text: Optional[str] = None,
        channels: Iterable[str] = ALL_CHANNELS,
    ) -> DeliveryResult:
        channels = set(channels)
        result = DeliveryResult()

        if EMAIL in channels:
            if contact.email:
                try:
                    mail = await self.mailer.send_mail(contact.email, subject, text_to_html(body), text=body)
                except Exception as e:
                    mail = MailResult(success=False, error=str(e) or type(e).__name__)
                result.email = mail.success
                if mail.success:
                    logger.info("Email sent to %s", contact.email)
                else:
                    logger.error("Email to %s failed: %s", contact.email, mail.error)
            else:
                logger.info("No email address for %s, skipping email", contact.name)

        if SMS in channels and sms_text:
            if not self.sms.configured:
                logger.info("SMS API key not configured, skipping SMS")
            elif not contact.phone:
                logger.info("No phone number for %s, skipping SMS", contact.name)
            else:
                try:
                    await self.sms.send_sms(contact.phone, sms_text)
                    result.sms = True
                except NotificationError as e:
                    logger.error("SMS to %s failed: %s", contact.phone, e)
                    result.sms = False
                except Exception:
                    logger.exception("SMS to %s failed", contact.phone)
                    result.sms = False

        return result
