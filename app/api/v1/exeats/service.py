"""
Exeat workflow engine: staff approve/reject, parent consent issue and resolution, history.

Every public operation is one transaction. The request row is read with FOR UPDATE and
written under its version counter, so two decisions racing on the same request cannot
both advance it. Approval decision, status change and audit entry commit together;
notifications go out after the commit and never undo it.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional, Tuple

from fastapi import status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.enums import Actor, ApprovalStatus, ConsentStatus, ContactMethod, ExeatStatus
from app.core.exceptions import (
    ConcurrentUpdateError,
    ConsentAlreadyResolvedError,
    ConsentExpiredError,
    InvalidTransitionError,
    NotFoundError,
    ServiceError,
)
from app.core.models import AuditLog, ExeatApproval, ExeatRequest, ParentConsent, Student
from app.integrations.notifier import Notifier

from .audit_service import log_audit, transition_details
from .consent import consent_expiry, consent_links, generate_consent_token
from .schemas import AuditLogResponse, ExeatApprovalResponse, ExeatHistoryResponse, ExeatRequestResponse
from .workflow import CONSENT_ISSUE_STAGES, allowed_stages, is_terminal, next_stage, parse_status

logger = logging.getLogger(__name__)


@dataclass
class _ConsentDispatch:
    """Everything the parent message needs, captured before commit."""

    parent_email: Optional[str]
    parent_phone: Optional[str]
    student_name: str
    reason: str
    approve_link: str
    decline_link: str
    expiry: datetime
    method: str


@asynccontextmanager
async def _atomic(db: AsyncSession) -> AsyncIterator[None]:
    try:
        yield
        await db.commit()
    except StaleDataError as e:
        await db.rollback()
        logger.warning("Concurrent exeat update detected; transition abandoned")
        raise ConcurrentUpdateError() from e
    except IntegrityError as e:
        await db.rollback()
        raise ConcurrentUpdateError("A conflicting record was written by another request. Try again.") from e
    except Exception:
        await db.rollback()
        raise


async def get_exeat_request(db: AsyncSession, exeat_request_id: int) -> Optional[ExeatRequest]:
    return (
        await db.execute(select(ExeatRequest).where(ExeatRequest.id == exeat_request_id))
    ).scalar_one_or_none()


async def _lock_exeat_request(db: AsyncSession, exeat_request_id: int) -> ExeatRequest:
    req = (
        await db.execute(
            select(ExeatRequest)
            .where(ExeatRequest.id == exeat_request_id)
            .with_for_update(of=ExeatRequest)
        )
    ).scalar_one_or_none()
    if not req:
        raise NotFoundError("Exeat request not found.")
    return req


async def _get_pending_approval(db: AsyncSession, req: ExeatRequest, approval_id: int) -> ExeatApproval:
    approval = await db.get(ExeatApproval, approval_id)
    if not approval or approval.exeat_request_id != req.id:
        raise NotFoundError("Approval not found for this exeat request.")
    if approval.status != ApprovalStatus.PENDING.value:
        raise InvalidTransitionError("This approval has already been decided.")
    if approval.stage != req.status:
        raise InvalidTransitionError(
            f"Approval was opened at stage '{approval.stage}' but the request is now at '{req.status}'."
        )
    return approval


async def get_student(db: AsyncSession, req: ExeatRequest) -> Optional[Student]:
    return await db.get(Student, req.student_id)


def _actor_for(approval: ExeatApproval) -> Actor:
    return Actor.staff(approval.staff_id) if approval.staff_id else Actor.system()


async def _latest_approval_staff_id(db: AsyncSession, exeat_request_id: int) -> Optional[int]:
    return (
        await db.execute(
            select(ExeatApproval.staff_id)
            .where(
                ExeatApproval.exeat_request_id == exeat_request_id,
                ExeatApproval.status == ApprovalStatus.APPROVED.value,
            )
            .order_by(ExeatApproval.updated_at.desc(), ExeatApproval.id.desc())
            .limit(1)
        )
    ).scalar_one_or_none()


async def _open_approval_locked(db: AsyncSession, req: ExeatRequest, staff_id: int, role: str) -> ExeatApproval:
    """Find or create the staff member's pending approval at the current stage. Caller commits."""
    if is_terminal(req.status):
        raise InvalidTransitionError(f"Exeat request is already {req.status}.")

    existing = (
        await db.execute(
            select(ExeatApproval).where(
                ExeatApproval.exeat_request_id == req.id,
                ExeatApproval.staff_id == staff_id,
                ExeatApproval.role == role,
                ExeatApproval.stage == req.status,
            ).limit(1)
        )
    ).scalar_one_or_none()
    if existing is not None:
        if existing.status == ApprovalStatus.PENDING.value:
            return existing
        raise ServiceError(
            f"You have already taken action on this request as '{role}'.",
            status.HTTP_409_CONFLICT,
        )

    approval = ExeatApproval(
        exeat_request_id=req.id,
        staff_id=staff_id,
        role=role,
        stage=req.status,
        status=ApprovalStatus.PENDING.value,
    )
    db.add(approval)
    await db.flush()
    return approval


def _ensure_role_covers_stage(req: ExeatRequest, role: str) -> None:
    if req.status not in allowed_stages([role]):
        raise ServiceError(
            f"Your role cannot act on requests at stage '{req.status}'.",
            status.HTTP_403_FORBIDDEN,
        )


async def open_approval(
    db: AsyncSession,
    exeat_request_id: int,
    staff_id: int,
    role: str,
) -> ExeatApproval:
    """
    Open a pending decision for the request's current stage on behalf of one staff member.
    An undecided approval already opened by the same staff member at this stage is returned as is.
    """
    async with _atomic(db):
        req = await _lock_exeat_request(db, exeat_request_id)
        approval = await _open_approval_locked(db, req, staff_id, role)
    await db.refresh(approval)
    return approval


async def _approve_locked(
    db: AsyncSession,
    req: ExeatRequest,
    approval: ExeatApproval,
    comment: Optional[str],
) -> Tuple[str, Optional[_ConsentDispatch]]:
    old_status = req.status
    new_status = next_stage(old_status, req.is_medical)

    approval.status = ApprovalStatus.APPROVED.value
    approval.comment = comment
    await db.flush()

    req.status = new_status.value
    await db.flush()

    await log_audit(
        db,
        _actor_for(approval),
        req.student_id,
        "approve",
        req.id,
        transition_details(old_status, new_status.value, comment),
    )

    dispatch = None
    if new_status == ExeatStatus.PARENT_CONSENT:
        requester_id = await _latest_approval_staff_id(db, req.id)
        method = req.preferred_mode_of_contact or ContactMethod.EMAIL.value
        _, dispatch = await _issue_parent_consent(db, req, method, None, requester_id, old_status)
    return old_status, dispatch


async def _announce_approval(
    db: AsyncSession,
    req: ExeatRequest,
    approval_id: int,
    old_status: str,
    dispatch: Optional[_ConsentDispatch],
    notifier: Notifier,
) -> None:
    logger.info(
        "Exeat advanced to next stage",
        extra={"exeat_id": req.id, "approval_id": approval_id, "old_status": old_status, "new_status": req.status},
    )
    await notifier.send_status_change(await get_student(db, req), req)
    if dispatch is not None:
        await _dispatch_consent(notifier, dispatch)


async def approve(
    db: AsyncSession,
    exeat_request_id: int,
    approval_id: int,
    comment: Optional[str] = None,
    *,
    notifier: Notifier,
) -> ExeatRequest:
    """Approve the current stage and advance exactly one stage. Entering parent_consent issues a consent."""
    async with _atomic(db):
        req = await _lock_exeat_request(db, exeat_request_id)
        approval = await _get_pending_approval(db, req, approval_id)
        old_status, dispatch = await _approve_locked(db, req, approval, comment)

    await _announce_approval(db, req, approval_id, old_status, dispatch, notifier)
    return req


async def approve_current_stage(
    db: AsyncSession,
    exeat_request_id: int,
    staff_id: int,
    role: str,
    comment: Optional[str] = None,
    *,
    notifier: Notifier,
) -> ExeatRequest:
    """
    Open and approve in one transaction. If the decision fails (wrong role, lost race,
    invalid transition) no pending approval is left behind.
    """
    async with _atomic(db):
        req = await _lock_exeat_request(db, exeat_request_id)
        _ensure_role_covers_stage(req, role)
        approval = await _open_approval_locked(db, req, staff_id, role)
        approval_id = approval.id
        old_status, dispatch = await _approve_locked(db, req, approval, comment)

    await _announce_approval(db, req, approval_id, old_status, dispatch, notifier)
    return req


def _ensure_rejectable(req: ExeatRequest) -> None:
    parse_status(req.status)
    if is_terminal(req.status):
        logger.warning("Reject on a final exeat status", extra={"exeat_id": req.id, "status": req.status})
        raise InvalidTransitionError(f"Exeat request is already {req.status}.")


async def _reject_locked(
    db: AsyncSession,
    req: ExeatRequest,
    approval: ExeatApproval,
    comment: Optional[str],
) -> str:
    old_status = req.status

    approval.status = ApprovalStatus.REJECTED.value
    approval.comment = comment
    await db.flush()

    req.status = ExeatStatus.REJECTED.value
    await db.flush()

    await log_audit(
        db,
        _actor_for(approval),
        req.student_id,
        "reject",
        req.id,
        transition_details(old_status, ExeatStatus.REJECTED.value, comment),
    )
    return old_status


async def reject(
    db: AsyncSession,
    exeat_request_id: int,
    approval_id: int,
    comment: Optional[str] = None,
    *,
    notifier: Notifier,
) -> ExeatRequest:
    """Reject at the current stage. rejected is terminal."""
    async with _atomic(db):
        req = await _lock_exeat_request(db, exeat_request_id)
        _ensure_rejectable(req)
        approval = await _get_pending_approval(db, req, approval_id)
        old_status = await _reject_locked(db, req, approval, comment)

    logger.info("Exeat rejected", extra={"exeat_id": req.id, "approval_id": approval_id, "old_status": old_status})
    await notifier.send_status_change(await get_student(db, req), req)
    return req


async def reject_current_stage(
    db: AsyncSession,
    exeat_request_id: int,
    staff_id: int,
    role: str,
    comment: Optional[str] = None,
    *,
    notifier: Notifier,
) -> ExeatRequest:
    """Open and reject in one transaction."""
    async with _atomic(db):
        req = await _lock_exeat_request(db, exeat_request_id)
        _ensure_role_covers_stage(req, role)
        _ensure_rejectable(req)
        approval = await _open_approval_locked(db, req, staff_id, role)
        approval_id = approval.id
        old_status = await _reject_locked(db, req, approval, comment)

    logger.info("Exeat rejected", extra={"exeat_id": req.id, "approval_id": approval_id, "old_status": old_status})
    await notifier.send_status_change(await get_student(db, req), req)
    return req


async def _issue_parent_consent(
    db: AsyncSession,
    req: ExeatRequest,
    method: str,
    message: Optional[str],
    staff_id: Optional[int],
    from_status: str,
) -> Tuple[ParentConsent, _ConsentDispatch]:
    """Replace-or-create the request's single consent row with a fresh token. Caller commits."""
    token = generate_consent_token()
    expires_at = consent_expiry(settings.parent_consent_ttl_hours)

    consent = (
        await db.execute(select(ParentConsent).where(ParentConsent.exeat_request_id == req.id))
    ).scalar_one_or_none()
    if consent is None:
        consent = ParentConsent(exeat_request_id=req.id)
        db.add(consent)
    consent.consent_status = ConsentStatus.PENDING.value
    consent.consent_method = method
    consent.consent_token = token
    consent.consent_message = message
    consent.consent_timestamp = None
    consent.expires_at = expires_at

    req.status = ExeatStatus.PARENT_CONSENT.value
    await db.flush()

    if staff_id:
        await log_audit(
            db,
            Actor.staff(staff_id),
            req.student_id,
            "parent_consent_request",
            req.id,
            f"Status changed from {from_status} to {ExeatStatus.PARENT_CONSENT.value} | Method: {method}",
        )

    approve_link, decline_link = consent_links(settings.app_base_url, token)
    student = await get_student(db, req)
    dispatch = _ConsentDispatch(
        parent_email=req.parent_email,
        parent_phone=req.parent_phone,
        student_name=student.full_name if student else "",
        reason=req.reason,
        approve_link=approve_link,
        decline_link=decline_link,
        expiry=expires_at,
        method=method,
    )
    return consent, dispatch


async def _dispatch_consent(notifier: Notifier, d: _ConsentDispatch) -> None:
    await notifier.send_parent_consent_request(
        d.parent_email,
        d.parent_phone,
        d.student_name,
        d.reason,
        d.approve_link,
        d.decline_link,
        d.expiry,
        method=d.method,
    )


async def send_parent_consent(
    db: AsyncSession,
    exeat_request_id: int,
    method: str,
    message: Optional[str] = None,
    staff_id: Optional[int] = None,
    *,
    notifier: Notifier,
) -> ParentConsent:
    """(Re)issue the parent consent. Idempotent per request: one row, refreshed token and expiry."""
    async with _atomic(db):
        req = await _lock_exeat_request(db, exeat_request_id)
        if parse_status(req.status) not in CONSENT_ISSUE_STAGES:
            raise InvalidTransitionError(
                f"Parent consent cannot be requested while the exeat is at '{req.status}'."
            )
        old_status = req.status
        consent, dispatch = await _issue_parent_consent(db, req, method, message, staff_id, old_status)

    logger.info(
        "Parent consent requested",
        extra={"exeat_id": req.id, "method": method, "expires_at": consent.expires_at.isoformat()},
    )
    await _dispatch_consent(notifier, dispatch)
    return consent


async def get_consent_by_token(db: AsyncSession, token: str) -> ParentConsent:
    consent = (
        await db.execute(select(ParentConsent).where(ParentConsent.consent_token == token))
    ).scalar_one_or_none()
    if not consent:
        raise NotFoundError("Consent request not found.")
    return consent


async def _resolve_parent_consent(
    db: AsyncSession,
    consent_id: int,
    approved: bool,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> ExeatRequest:
    now = now or datetime.utcnow()
    new_consent_status = ConsentStatus.APPROVED if approved else ConsentStatus.DECLINED
    new_status = ExeatStatus.DEAN_REVIEW if approved else ExeatStatus.REJECTED
    action = "parent_consent_approve" if approved else "parent_consent_decline"
    note = "Parent approved consent request" if approved else "Parent declined consent request"

    async with _atomic(db):
        consent = (
            await db.execute(
                select(ParentConsent)
                .where(ParentConsent.id == consent_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if not consent:
            raise NotFoundError("Consent request not found.")
        if consent.consent_status != ConsentStatus.PENDING.value:
            raise ConsentAlreadyResolvedError(consent.consent_status)
        if consent.is_expired(now):
            raise ConsentExpiredError()

        req = await _lock_exeat_request(db, consent.exeat_request_id)
        if req.status != ExeatStatus.PARENT_CONSENT.value:
            raise InvalidTransitionError("This exeat request is no longer awaiting parent consent.")
        old_status = req.status

        consent.consent_status = new_consent_status.value
        consent.consent_timestamp = now
        await db.flush()

        req.status = new_status.value
        await db.flush()

        await log_audit(
            db,
            Actor.system(),
            req.student_id,
            action,
            req.id,
            f"{transition_details(old_status, new_status.value)} | {note}",
        )

    logger.info(
        "Parent consent resolved",
        extra={"exeat_id": req.id, "parent_consent_id": consent_id, "consent_status": new_consent_status.value},
    )
    await notifier.send_status_change(await get_student(db, req), req)
    return req


async def parent_consent_approve(
    db: AsyncSession,
    consent_id: int,
    *,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> ExeatRequest:
    return await _resolve_parent_consent(db, consent_id, True, notifier, now)


async def parent_consent_decline(
    db: AsyncSession,
    consent_id: int,
    *,
    notifier: Notifier,
    now: Optional[datetime] = None,
) -> ExeatRequest:
    return await _resolve_parent_consent(db, consent_id, False, notifier, now)


def request_to_response(r: ExeatRequest) -> ExeatRequestResponse:
    return ExeatRequestResponse(
        id=r.id,
        student_id=r.student_id,
        reason=r.reason,
        is_medical=r.is_medical,
        preferred_mode_of_contact=r.preferred_mode_of_contact,
        parent_email=r.parent_email,
        parent_phone=r.parent_phone,
        status=r.status,
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


async def get_exeat_history(db: AsyncSession, exeat_request_id: int) -> ExeatHistoryResponse:
    req = await get_exeat_request(db, exeat_request_id)
    if not req:
        raise NotFoundError("Exeat request not found.")
    logs = (
        await db.execute(
            select(AuditLog)
            .where(AuditLog.target_type == "exeat_request", AuditLog.target_id == req.id)
            .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        )
    ).scalars().all()
    approvals = (
        await db.execute(
            select(ExeatApproval)
            .where(ExeatApproval.exeat_request_id == req.id)
            .order_by(ExeatApproval.updated_at.desc(), ExeatApproval.id.desc())
        )
    ).scalars().all()
    return ExeatHistoryResponse(
        exeat_request=request_to_response(req),
        audit_logs=[AuditLogResponse.model_validate(log) for log in logs],
        approvals=[ExeatApprovalResponse.model_validate(a) for a in approvals],
    )
