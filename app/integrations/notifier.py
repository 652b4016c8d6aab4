"""
Outbound notifications for the exeat workflow.

Email goes over SMTP; SMS/WhatsApp goes through Twilio and is only used when
PARENT_CONSENT_SMS_ENABLED is set. Delivery is best-effort: every failure is
logged here and never reaches the workflow that triggered it.
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from functools import lru_cache
from typing import Optional

from twilio.rest import Client as TwilioClient

from app.core.config import Settings, settings
from app.core.enums import ContactMethod
from app.core.models import ExeatRequest, Student

logger = logging.getLogger(__name__)

SIGNATURE = "VERITAS University Exeat Management Team"


@dataclass
class SmtpConfig:
    host: str
    port: int
    username: Optional[str]
    password: Optional[str]
    use_tls: bool
    from_address: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpConfig":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.mail_from_address,
        )


class EmailSender:
    """Plain-text email over SMTP. smtplib blocks, so sends run in a worker thread."""

    def __init__(self, config: SmtpConfig) -> None:
        self.config = config

    async def send(self, to: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.config.from_address
        msg["To"] = to
        msg.set_content(body)
        await asyncio.to_thread(self._send_sync, msg)

    def _send_sync(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.config.host, self.config.port, timeout=30) as server:
            if self.config.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.config.username and self.config.password:
                server.login(self.config.username, self.config.password)
            server.send_message(msg)


class SmsSender:
    """SMS and WhatsApp delivery through Twilio."""

    def __init__(self, client: TwilioClient, sms_from: Optional[str], whatsapp_from: Optional[str]) -> None:
        self.client = client
        self.sms_from = sms_from
        self.whatsapp_from = whatsapp_from

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["SmsSender"]:
        if not (settings.twilio_account_sid and settings.twilio_auth_token):
            return None
        client = TwilioClient(settings.twilio_account_sid, settings.twilio_auth_token)
        return cls(client, settings.twilio_sms_from, settings.twilio_whatsapp_from)

    async def send(self, to: str, body: str, channel: str) -> None:
        if channel == ContactMethod.WHATSAPP.value:
            from_, to_ = f"whatsapp:{self.whatsapp_from}", f"whatsapp:{to}"
        else:
            from_, to_ = self.sms_from, to
        await asyncio.to_thread(self.client.messages.create, to=to_, from_=from_, body=body)


def format_expiry(expires_at: datetime) -> str:
    return expires_at.strftime("%B %d, %Y %I:%M %p")


class Notifier:
    def __init__(
        self,
        email_sender: EmailSender,
        sms_sender: Optional[SmsSender] = None,
        oversight_email: Optional[str] = None,
        sms_enabled: bool = False,
    ) -> None:
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.oversight_email = oversight_email
        self.sms_enabled = sms_enabled

    @classmethod
    def from_settings(cls, settings: Settings) -> "Notifier":
        return cls(
            email_sender=EmailSender(SmtpConfig.from_settings(settings)),
            sms_sender=SmsSender.from_settings(settings),
            oversight_email=settings.exeat_oversight_email,
            sms_enabled=settings.parent_consent_sms_enabled,
        )

    async def send_status_change(self, student: Optional[Student], exeat_request: ExeatRequest) -> None:
        email = student.contact_email if student is not None else None
        if not email:
            logger.warning(
                "No email available for student; status notification skipped",
                extra={"student_id": exeat_request.student_id, "exeat_id": exeat_request.id},
            )
            return

        body = (
            f"Dear {student.fname} {student.lname},\n\n"
            "Your exeat request status has changed.\n\n"
            f"Current status: {exeat_request.status}\n"
            f"Reason: {exeat_request.reason}\n\n"
            "Thank you.\n\n"
            f"- {SIGNATURE}\n"
        )
        try:
            await self.email_sender.send(email, "Exeat Request Status Updated", body)
        except Exception as e:
            logger.error(
                "Failed to send status update email",
                extra={"exeat_id": exeat_request.id, "error": str(e)},
            )

    async def send_parent_consent_request(
        self,
        parent_email: Optional[str],
        parent_phone: Optional[str],
        student_name: str,
        reason: str,
        approve_link: str,
        decline_link: str,
        expiry: datetime,
        method: str = ContactMethod.EMAIL.value,
    ) -> None:
        expiry_text = format_expiry(expiry)
        body = (
            "Hello,\n\n"
            f"We would like to inform you that {student_name} has requested permission to leave campus "
            f'due to the following reason: "{reason}".\n\n'
            f"Please review and provide your consent before {expiry_text}:\n\n"
            f"Approve: {approve_link}\n"
            f"Reject: {decline_link}\n\n"
            "Thank you for your support.\n\n"
            f"- {SIGNATURE}\n"
        )

        recipients = [r for r in (parent_email, self.oversight_email) if r]
        if not parent_email:
            logger.warning("Parent email missing; consent request not emailed to parent", extra={"student_name": student_name})
        for recipient in recipients:
            try:
                await self.email_sender.send(recipient, "Exeat Consent Request", body)
            except Exception as e:
                logger.error("Consent email failed", extra={"recipient": recipient, "error": str(e)})

        if method in (ContactMethod.TEXT.value, ContactMethod.WHATSAPP.value):
            await self._send_consent_text(parent_phone, student_name, reason, approve_link, decline_link, expiry_text, method)

    async def _send_consent_text(
        self,
        parent_phone: Optional[str],
        student_name: str,
        reason: str,
        approve_link: str,
        decline_link: str,
        expiry_text: str,
        method: str,
    ) -> None:
        if not self.sms_enabled:
            logger.info("Text consent channel disabled; email only", extra={"method": method})
            return
        if self.sms_sender is None or not parent_phone:
            logger.warning("Text consent requested but no SMS sender or phone number", extra={"method": method})
            return
        channel = ContactMethod.WHATSAPP.value if method == ContactMethod.WHATSAPP.value else "sms"
        text = (
            f'Dear Parent of {student_name}, reason: "{reason}".\n'
            f"Approve: {approve_link}\nReject: {decline_link}\nValid until: {expiry_text}"
        )
        try:
            await self.sms_sender.send(parent_phone, text, channel)
            logger.info("Sent consent message", extra={"channel": channel})
        except Exception as e:
            logger.error("Failed to send consent message", extra={"channel": channel, "error": str(e)})


@lru_cache
def get_notifier() -> Notifier:
    """FastAPI dependency: process-wide notifier built from settings."""
    return Notifier.from_settings(settings)
