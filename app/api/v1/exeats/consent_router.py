"""
Public parent consent endpoints. Reached from the links in the consent email, so they
take no staff credentials and answer with a small HTML page.
"""

from html import escape

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError
from app.db.session import get_db
from app.integrations.notifier import Notifier, get_notifier

from .consent import CONSENT_PATH
from .schemas import ParentConsentResponse, ParentConsentView
from . import service

router = APIRouter(tags=["parent-consent"])

_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<h1>{title}</h1>
<p>{message}</p>
</body>
</html>
"""


def _page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(_PAGE.format(title=escape(title), message=escape(message)), status_code=status_code)


async def _resolve(db: AsyncSession, token: str, approved: bool, notifier: Notifier) -> HTMLResponse:
    try:
        consent = await service.get_consent_by_token(db, token)
        if approved:
            await service.parent_consent_approve(db, consent.id, notifier=notifier)
        else:
            await service.parent_consent_decline(db, consent.id, notifier=notifier)
    except ServiceError as e:
        return _page("Exeat Consent", e.message, e.status_code)
    if approved:
        return _page("Consent Approved", "Thank you. You have approved this exeat request.")
    return _page("Consent Declined", "You have declined this exeat request. The student has been notified.")


@router.get(f"{CONSENT_PATH}/{{token}}/approve", response_class=HTMLResponse)
async def approve_consent(
    token: str,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> HTMLResponse:
    return await _resolve(db, token, True, notifier)


@router.get(f"{CONSENT_PATH}/{{token}}/reject", response_class=HTMLResponse)
async def decline_consent(
    token: str,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> HTMLResponse:
    return await _resolve(db, token, False, notifier)


@router.get("/api/parent/consent/{token}", response_model=ParentConsentView)
async def show_consent(token: str, db: AsyncSession = Depends(get_db)) -> ParentConsentView:
    """Consent details for the parent landing page. An expired, unanswered consent shows as declined."""
    try:
        consent = await service.get_consent_by_token(db, token)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    req = await service.get_exeat_request(db, consent.exeat_request_id)
    student = await service.get_student(db, req)
    return ParentConsentView(
        consent=ParentConsentResponse(
            id=consent.id,
            exeat_request_id=consent.exeat_request_id,
            consent_status=consent.effective_status(),
            consent_method=consent.consent_method,
            consent_message=consent.consent_message,
            consent_timestamp=consent.consent_timestamp,
            expires_at=consent.expires_at,
        ),
        student_name=student.full_name if student else "",
        reason=req.reason,
        exeat_status=req.status,
    )
