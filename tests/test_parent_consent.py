from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from app.api.v1.exeats import service
from app.api.v1.exeats.consent import consent_expiry, consent_links, generate_consent_token
from app.core.enums import ExeatStatus
from app.core.exceptions import (
    ConsentAlreadyResolvedError,
    ConsentExpiredError,
    InvalidTransitionError,
    NotFoundError,
)
from app.core.models import AuditLog, ExeatRequest, ParentConsent


def test_consent_links_point_at_parent_endpoints() -> None:
    approve, decline = consent_links("https://exeat.veritas.edu.ng/", "tok123")
    assert approve == "https://exeat.veritas.edu.ng/api/parent/exeat-consent/tok123/approve"
    assert decline == "https://exeat.veritas.edu.ng/api/parent/exeat-consent/tok123/reject"


def test_tokens_are_unique_and_url_safe() -> None:
    tokens = {generate_consent_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) >= 40 and "/" not in t and "+" not in t for t in tokens)


def test_consent_expiry_is_ttl_after_now() -> None:
    now = datetime(2025, 3, 1, 8, 0)
    assert consent_expiry(24, now) == datetime(2025, 3, 2, 8, 0)


@pytest.fixture()
async def awaiting_consent(db_session, make_exeat, make_staff, notifier):
    req = await make_exeat(status=ExeatStatus.DEPUTY_DEAN_REVIEW)
    deputy = await make_staff("deputy_dean")
    consent = await service.send_parent_consent(
        db_session, req.id, "email", "Please confirm", deputy.id, notifier=notifier
    )
    return req, consent


@pytest.mark.asyncio
async def test_send_parent_consent_moves_request_and_audits(db_session, awaiting_consent, notifier) -> None:
    req, consent = awaiting_consent

    assert req.status == ExeatStatus.PARENT_CONSENT.value
    assert consent.consent_status == "pending"
    assert consent.consent_message == "Please confirm"
    assert consent.consent_timestamp is None
    assert timedelta(hours=23, minutes=59) < consent.expires_at - datetime.utcnow() <= timedelta(hours=24)
    entry = (await db_session.execute(select(AuditLog).where(AuditLog.target_id == req.id))).scalar_one()
    assert entry.action == "parent_consent_request"
    assert entry.details == "Status changed from deputy-dean_review to parent_consent | Method: email"
    assert len(notifier.consent_requests) == 1


@pytest.mark.asyncio
async def test_resend_replaces_token_on_same_row(db_session, awaiting_consent, notifier) -> None:
    req, consent = awaiting_consent
    first_id, first_token = consent.id, consent.consent_token

    again = await service.send_parent_consent(db_session, req.id, "whatsapp", notifier=notifier)

    assert again.id == first_id
    assert again.consent_token != first_token
    assert again.consent_method == "whatsapp"
    rows = (
        await db_session.execute(select(ParentConsent).where(ParentConsent.exeat_request_id == req.id))
    ).scalars().all()
    assert len(rows) == 1
    with pytest.raises(NotFoundError):
        await service.get_consent_by_token(db_session, first_token)
    assert notifier.consent_requests[-1]["method"] == "whatsapp"
    # no staff member, no audit entry for the resend
    actions = (await db_session.execute(select(AuditLog.action).where(AuditLog.target_id == req.id))).scalars().all()
    assert actions == ["parent_consent_request"]


@pytest.mark.asyncio
async def test_send_parent_consent_refused_from_other_stages(db_session, make_exeat, notifier) -> None:
    req = await make_exeat(status=ExeatStatus.PENDING)
    req_id = req.id

    with pytest.raises(InvalidTransitionError):
        await service.send_parent_consent(db_session, req_id, "email", notifier=notifier)
    assert notifier.consent_requests == []


@pytest.mark.asyncio
async def test_parent_approval_moves_to_dean_review(db_session, awaiting_consent, notifier) -> None:
    req, consent = awaiting_consent

    await service.parent_consent_approve(db_session, consent.id, notifier=notifier)

    assert req.status == ExeatStatus.DEAN_REVIEW.value
    assert consent.consent_status == "approved"
    assert consent.consent_timestamp is not None
    entry = (
        await db_session.execute(
            select(AuditLog).where(AuditLog.target_id == req.id, AuditLog.action == "parent_consent_approve")
        )
    ).scalar_one()
    assert entry.staff_id is None
    assert entry.actor_type == "system"
    assert entry.details == "Status changed from parent_consent to dean_review | Parent approved consent request"
    assert notifier.status_changes[-1]["status"] == "dean_review"


@pytest.mark.asyncio
async def test_parent_decline_rejects_request(db_session, awaiting_consent, notifier) -> None:
    req, consent = awaiting_consent

    await service.parent_consent_decline(db_session, consent.id, notifier=notifier)

    assert req.status == ExeatStatus.REJECTED.value
    assert consent.consent_status == "declined"


@pytest.mark.asyncio
async def test_second_resolution_is_refused(db_session, awaiting_consent, notifier) -> None:
    req, consent = awaiting_consent
    req_id, consent_id = req.id, consent.id
    await service.parent_consent_approve(db_session, consent_id, notifier=notifier)

    with pytest.raises(ConsentAlreadyResolvedError) as exc:
        await service.parent_consent_decline(db_session, consent_id, notifier=notifier)

    assert exc.value.status_code == 409
    assert (await db_session.get(ExeatRequest, req_id)).status == ExeatStatus.DEAN_REVIEW.value


@pytest.mark.asyncio
async def test_expired_consent_cannot_be_resolved(db_session, awaiting_consent, notifier) -> None:
    req, consent = awaiting_consent
    req_id, consent_id = req.id, consent.id
    later = consent.expires_at + timedelta(minutes=1)

    assert consent.effective_status(later) == "declined"
    with pytest.raises(ConsentExpiredError) as exc:
        await service.parent_consent_approve(db_session, consent_id, notifier=notifier, now=later)

    assert exc.value.status_code == 410
    stored = await db_session.get(ParentConsent, consent_id)
    assert stored.consent_status == "pending"
    assert (await db_session.get(ExeatRequest, req_id)).status == ExeatStatus.PARENT_CONSENT.value


@pytest.mark.asyncio
async def test_consent_for_request_no_longer_waiting(db_session, awaiting_consent, notifier) -> None:
    req, consent = awaiting_consent
    consent_id = consent.id
    req.status = ExeatStatus.REJECTED.value
    await db_session.commit()

    with pytest.raises(InvalidTransitionError):
        await service.parent_consent_approve(db_session, consent_id, notifier=notifier)


@pytest.mark.asyncio
async def test_unknown_consent(db_session, notifier) -> None:
    with pytest.raises(NotFoundError):
        await service.parent_consent_approve(db_session, 999, notifier=notifier)
    with pytest.raises(NotFoundError):
        await service.get_consent_by_token(db_session, "nope")
