from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_exeat_staff
from app.auth.schemas import CurrentStaff
from app.core.exceptions import ServiceError
from app.db.session import get_db
from app.integrations.notifier import Notifier, get_notifier

from .schemas import ExeatDecision, ExeatHistoryResponse, ExeatRequestResponse, SendParentConsent
from . import service

router = APIRouter(prefix="/api/v1/staff/exeat-requests", tags=["exeats"])


@router.get("/{exeat_id}", response_model=ExeatRequestResponse)
async def get_exeat_request(
    exeat_id: int,
    db: AsyncSession = Depends(get_db),
    current_staff: CurrentStaff = Depends(require_exeat_staff),
) -> ExeatRequestResponse:
    req = await service.get_exeat_request(db, exeat_id)
    if not req:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exeat request not found.")
    return service.request_to_response(req)


@router.post("/{exeat_id}/approve", response_model=ExeatRequestResponse)
async def approve_exeat_request(
    exeat_id: int,
    payload: ExeatDecision,
    db: AsyncSession = Depends(get_db),
    current_staff: CurrentStaff = Depends(require_exeat_staff),
    notifier: Notifier = Depends(get_notifier),
) -> ExeatRequestResponse:
    """Approve the request's current stage as the current staff member; it moves exactly one stage forward."""
    try:
        req = await service.approve_current_stage(
            db, exeat_id, current_staff.id, current_staff.role, payload.comment, notifier=notifier
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return service.request_to_response(req)


@router.post("/{exeat_id}/reject", response_model=ExeatRequestResponse)
async def reject_exeat_request(
    exeat_id: int,
    payload: ExeatDecision,
    db: AsyncSession = Depends(get_db),
    current_staff: CurrentStaff = Depends(require_exeat_staff),
    notifier: Notifier = Depends(get_notifier),
) -> ExeatRequestResponse:
    """Reject at the current stage. The request becomes final."""
    try:
        req = await service.reject_current_stage(
            db, exeat_id, current_staff.id, current_staff.role, payload.comment, notifier=notifier
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return service.request_to_response(req)


@router.post("/{exeat_id}/send-parent-consent", response_model=ExeatRequestResponse)
async def send_parent_consent(
    exeat_id: int,
    payload: SendParentConsent,
    db: AsyncSession = Depends(get_db),
    current_staff: CurrentStaff = Depends(require_exeat_staff),
    notifier: Notifier = Depends(get_notifier),
) -> ExeatRequestResponse:
    """(Re)send the parent consent request. A new link replaces any earlier one."""
    try:
        consent = await service.send_parent_consent(
            db,
            exeat_id,
            payload.method.value,
            payload.message,
            current_staff.id,
            notifier=notifier,
        )
        req = await service.get_exeat_request(db, consent.exeat_request_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return service.request_to_response(req)


@router.get("/{exeat_id}/history", response_model=ExeatHistoryResponse)
async def get_exeat_history(
    exeat_id: int,
    db: AsyncSession = Depends(get_db),
    current_staff: CurrentStaff = Depends(require_exeat_staff),
) -> ExeatHistoryResponse:
    """Audit trail and staff decisions for one request, newest first."""
    try:
        return await service.get_exeat_history(db, exeat_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
