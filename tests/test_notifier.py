import smtplib
from datetime import datetime
from types import SimpleNamespace
from typing import Optional

import pytest

from app.integrations.notifier import EmailSender, Notifier, SmtpConfig, format_expiry


class FakeEmailSender:
    def __init__(self, fail_for=(), error: Exception = smtplib.SMTPException("relay refused")) -> None:
        self.sent = []
        self.fail_for = set(fail_for)
        self.error = error

    async def send(self, to: str, subject: str, body: str) -> None:
        if to in self.fail_for:
            raise self.error
        self.sent.append((to, subject, body))


class FakeSmsSender:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.sent = []
        self.error = error

    async def send(self, to: str, body: str, channel: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((to, channel, body))


def _consent_args(method: str = "email"):
    return dict(
        parent_email="parent@example.com",
        parent_phone="+2348030000001",
        student_name="Ada Okafor",
        reason="Family wedding",
        approve_link="https://x/api/parent/exeat-consent/t/approve",
        decline_link="https://x/api/parent/exeat-consent/t/reject",
        expiry=datetime(2025, 3, 2, 8, 0),
        method=method,
    )


def test_format_expiry() -> None:
    assert format_expiry(datetime(2025, 3, 2, 20, 5)) == "March 02, 2025 08:05 PM"


@pytest.mark.asyncio
async def test_consent_email_goes_to_parent_and_oversight() -> None:
    email = FakeEmailSender()
    notifier = Notifier(email, oversight_email="exeat-office@veritas.edu.ng")

    await notifier.send_parent_consent_request(**_consent_args())

    assert [to for to, _, _ in email.sent] == ["parent@example.com", "exeat-office@veritas.edu.ng"]
    body = email.sent[0][2]
    assert "Ada Okafor" in body
    assert "Approve: https://x/api/parent/exeat-consent/t/approve" in body
    assert "March 02, 2025 08:00 AM" in body


@pytest.mark.asyncio
async def test_text_channel_disabled_sends_email_only() -> None:
    email, sms = FakeEmailSender(), FakeSmsSender()
    notifier = Notifier(email, sms_sender=sms, sms_enabled=False)

    await notifier.send_parent_consent_request(**_consent_args("text"))

    assert len(email.sent) == 1
    assert sms.sent == []


@pytest.mark.asyncio
async def test_whatsapp_channel_when_enabled() -> None:
    email, sms = FakeEmailSender(), FakeSmsSender()
    notifier = Notifier(email, sms_sender=sms, sms_enabled=True)

    await notifier.send_parent_consent_request(**_consent_args("whatsapp"))

    assert sms.sent[0][:2] == ("+2348030000001", "whatsapp")


@pytest.mark.asyncio
async def test_email_failure_is_logged_not_raised() -> None:
    email = FakeEmailSender(fail_for={"ada@student.veritas.edu.ng"})
    notifier = Notifier(email)
    student = SimpleNamespace(fname="Ada", lname="Okafor", contact_email="ada@student.veritas.edu.ng")
    exeat = SimpleNamespace(id=1, student_id=7, status="dean_review", reason="Family wedding")

    await notifier.send_status_change(student, exeat)

    assert email.sent == []


@pytest.mark.asyncio
async def test_status_change_without_email_is_skipped() -> None:
    email = FakeEmailSender()
    notifier = Notifier(email)
    student = SimpleNamespace(fname="Ada", lname="Okafor", contact_email=None)
    exeat = SimpleNamespace(id=1, student_id=7, status="rejected", reason="Family wedding")

    await notifier.send_status_change(student, exeat)

    assert email.sent == []


@pytest.mark.asyncio
async def test_status_change_swallows_unexpected_sender_error() -> None:
    email = FakeEmailSender(fail_for={"ada@student.veritas.edu.ng"}, error=ValueError("bad header"))
    notifier = Notifier(email)
    student = SimpleNamespace(fname="Ada", lname="Okafor", contact_email="ada@student.veritas.edu.ng")
    exeat = SimpleNamespace(id=1, student_id=7, status="dean_review", reason="Family wedding")

    await notifier.send_status_change(student, exeat)

    assert email.sent == []


@pytest.mark.asyncio
async def test_malformed_parent_email_does_not_block_other_recipients() -> None:
    email = FakeEmailSender(fail_for={"parent@example.com"}, error=ValueError("bad header"))
    notifier = Notifier(email, oversight_email="exeat-office@veritas.edu.ng")

    await notifier.send_parent_consent_request(**_consent_args())

    assert [to for to, _, _ in email.sent] == ["exeat-office@veritas.edu.ng"]


@pytest.mark.asyncio
async def test_header_injection_in_parent_email_is_logged_not_raised() -> None:
    config = SmtpConfig(
        host="smtp.invalid",
        port=25,
        username=None,
        password=None,
        use_tls=False,
        from_address="exeat@veritas.edu.ng",
    )
    notifier = Notifier(EmailSender(config))
    args = _consent_args()
    args["parent_email"] = "parent@example.com\nBcc: someone@example.com"

    await notifier.send_parent_consent_request(**args)


@pytest.mark.asyncio
async def test_text_channel_failure_is_logged_not_raised() -> None:
    email, sms = FakeEmailSender(), FakeSmsSender(error=ValueError("invalid phone number"))
    notifier = Notifier(email, sms_sender=sms, sms_enabled=True)

    await notifier.send_parent_consent_request(**_consent_args("text"))

    assert len(email.sent) == 1
    assert sms.sent == []
