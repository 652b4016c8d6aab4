from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import require_admin
from app.db.session import get_db
from app.integrations.paystack import PaystackClient, get_payment_gateway

from .recovery import recover_orphan_payments
from .schemas import (
    BatchVerificationResult,
    BatchVerifyRequest,
    PaymentVerificationResult,
    PendingPaymentsStats,
    RecoveryReport,
)
from . import service

router = APIRouter(
    prefix="/api/v1/admin/payments",
    tags=["payments"],
    dependencies=[Depends(require_admin)],
)


@router.post("/{payment_id}/verify", response_model=PaymentVerificationResult)
async def verify_payment(
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    gateway: PaystackClient = Depends(get_payment_gateway),
) -> PaymentVerificationResult:
    """Re-check one payment with Paystack. A gateway failure is reported with success=false."""
    payment = await service.get_payment(db, payment_id)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")
    return await service.verify_single_payment(db, payment, gateway)


@router.post("/verify-batch", response_model=BatchVerificationResult)
async def verify_batch(
    payload: BatchVerifyRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaystackClient = Depends(get_payment_gateway),
) -> BatchVerificationResult:
    """Verify up to 100 payments sequentially."""
    return await service.verify_batch_payments(db, payload.payment_ids, gateway)


@router.get("/pending-stats", response_model=PendingPaymentsStats)
async def pending_stats(db: AsyncSession = Depends(get_db)) -> PendingPaymentsStats:
    return await service.get_pending_payments_stats(db)


@router.post("/recover-orphans", response_model=RecoveryReport)
async def recover_orphans(
    dry_run: bool = True,
    student_id: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
) -> RecoveryReport:
    """Backfill registrations for successful payments with none linked. Defaults to a dry run."""
    return await recover_orphan_payments(db, dry_run=dry_run, student_id=student_id)
