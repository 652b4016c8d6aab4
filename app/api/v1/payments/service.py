"""
Payment reconciliation against the gateway.

Every local write is conditional on the state it was computed from: the payment update is
a compare-and-set on its old status and the registration update only fires while is_paid
is still false. A webhook, a manual verify and the scheduled job racing on one payment
therefore apply the downstream registration update at most once.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import PaymentStatus
from app.core.exceptions import PaymentGatewayError
from app.core.models import NyscPayment, StudentNysc
from app.integrations.paystack import PaystackClient, map_gateway_status

from .schemas import BatchItem, BatchVerificationResult, PaymentVerificationResult, PendingPaymentsStats

logger = logging.getLogger(__name__)


async def verify_single_payment(
    db: AsyncSession,
    payment: NyscPayment,
    gateway: PaystackClient,
    now: Optional[datetime] = None,
) -> PaymentVerificationResult:
    """
    Re-check one payment with the gateway and apply the result.

    Gateway failures come back as success=False and leave local state untouched.
    """
    payment_id = payment.id
    reference = payment.payment_reference
    old_status = payment.status
    student_nysc_id = payment.student_nysc_id
    logger.info(
        "Verifying single payment",
        extra={"payment_id": payment_id, "reference": reference, "current_status": old_status},
    )

    try:
        transaction = await gateway.verify(reference)
    except PaymentGatewayError as e:
        logger.warning(
            "Payment verification failed at the gateway",
            extra={"payment_id": payment_id, "reference": reference, "error": e.message},
        )
        return PaymentVerificationResult(
            payment_id=payment_id,
            reference=reference,
            success=False,
            message=e.message,
            status=old_status,
        )

    new_status = map_gateway_status(transaction.status)
    if new_status == old_status:
        return PaymentVerificationResult(
            payment_id=payment_id,
            reference=reference,
            success=True,
            message="Payment status unchanged",
            status=old_status,
        )

    now = now or datetime.utcnow()
    values = {"status": new_status, "gateway_response": transaction.raw, "verified_at": now}
    if transaction.id is not None:
        values["transaction_id"] = str(transaction.id)
    if transaction.paid_at_utc is not None:
        values["payment_date"] = transaction.paid_at_utc

    registration_updated = False
    try:
        result = await db.execute(
            update(NyscPayment)
            .where(NyscPayment.id == payment_id, NyscPayment.status == old_status)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.info(
                "Payment changed by another process; verification result not applied",
                extra={"payment_id": payment_id, "reference": reference},
            )
            return PaymentVerificationResult(
                payment_id=payment_id,
                reference=reference,
                success=True,
                message="Payment already updated by another process",
                status=old_status,
            )

        if new_status == PaymentStatus.SUCCESSFUL.value:
            if student_nysc_id is None:
                logger.warning(
                    "Successful payment has no linked registration; left for orphan recovery",
                    extra={"payment_id": payment_id, "reference": reference},
                )
            else:
                nysc_result = await db.execute(
                    update(StudentNysc)
                    .where(StudentNysc.id == student_nysc_id, StudentNysc.is_paid.is_(False))
                    .values(is_paid=True, is_submitted=True, submitted_at=now)
                    .execution_options(synchronize_session="fetch")
                )
                registration_updated = nysc_result.rowcount == 1
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    if registration_updated:
        logger.info(
            "Student NYSC record updated for successful payment",
            extra={"student_nysc_id": student_nysc_id, "payment_id": payment_id},
        )
    logger.info(
        "Payment status updated",
        extra={
            "payment_id": payment_id,
            "reference": reference,
            "old_status": old_status,
            "new_status": new_status,
            "amount": transaction.amount,
        },
    )
    return PaymentVerificationResult(
        payment_id=payment_id,
        reference=reference,
        success=True,
        message=f"Payment status updated from {old_status} to {new_status}",
        old_status=old_status,
        new_status=new_status,
        registration_updated=registration_updated,
    )


async def get_payment(db: AsyncSession, payment_id: int) -> Optional[NyscPayment]:
    return await db.get(NyscPayment, payment_id, populate_existing=True)


async def verify_batch_payments(
    db: AsyncSession,
    payment_ids: Sequence[int],
    gateway: PaystackClient,
    delay_seconds: Optional[float] = None,
) -> BatchVerificationResult:
    """Verify payments one after another. One item failing never stops the rest."""
    delay = settings.payment_verify_delay_seconds if delay_seconds is None else delay_seconds
    results = BatchVerificationResult(total=len(payment_ids))

    for index, payment_id in enumerate(payment_ids):
        try:
            payment = await get_payment(db, payment_id)
            if payment is None:
                results.errors += 1
                results.details.append(BatchItem(payment_id=payment_id, status="error", message="Payment not found"))
                continue

            result = await verify_single_payment(db, payment, gateway)
            results.verified += 1
            if result.success:
                if result.new_status is not None:
                    results.updated += 1
                    if result.new_status == PaymentStatus.SUCCESSFUL.value:
                        results.successful += 1
                    elif result.new_status == PaymentStatus.FAILED.value:
                        results.failed += 1
            else:
                results.errors += 1
            results.details.append(
                BatchItem(
                    payment_id=payment_id,
                    reference=result.reference,
                    status="verified" if result.success else "error",
                    message=result.message,
                )
            )
        except Exception as e:
            await db.rollback()
            logger.exception("Error verifying payment in batch", extra={"payment_id": payment_id, "error": str(e)})
            results.errors += 1
            results.details.append(BatchItem(payment_id=payment_id, status="error", message=str(e)))

        if delay and index < len(payment_ids) - 1:
            await asyncio.sleep(delay)

    logger.info(
        "Batch payment verification finished",
        extra={
            "total": results.total,
            "updated": results.updated,
            "successful": results.successful,
            "errors": results.errors,
        },
    )
    return results


async def select_pending_payment_ids(
    db: AsyncSession,
    now: Optional[datetime] = None,
    force: bool = False,
    limit: Optional[int] = None,
) -> List[int]:
    """
    Pending payments eligible for re-verification, newest first.

    Payments younger than the minimum age are skipped (the user may still be on the
    checkout page) unless `force` is set; payments older than the maximum age are abandoned.
    """
    now = now or datetime.utcnow()
    stmt = select(NyscPayment.id).where(
        NyscPayment.status == PaymentStatus.PENDING.value,
        NyscPayment.created_at >= now - timedelta(days=settings.payment_verify_max_age_days),
    )
    if not force:
        stmt = stmt.where(
            NyscPayment.created_at <= now - timedelta(minutes=settings.payment_verify_min_age_minutes)
        )
    stmt = stmt.order_by(NyscPayment.created_at.desc(), NyscPayment.id.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def verify_pending_payments(
    db: AsyncSession,
    gateway: PaystackClient,
    *,
    force: bool = False,
    limit: Optional[int] = None,
    dry_run: bool = False,
    delay_seconds: Optional[float] = None,
    now: Optional[datetime] = None,
) -> BatchVerificationResult:
    payment_ids = await select_pending_payment_ids(db, now=now, force=force, limit=limit)
    logger.info(
        "Pending payments selected for verification",
        extra={"count": len(payment_ids), "force": force, "dry_run": dry_run},
    )
    if dry_run:
        return BatchVerificationResult(
            total=len(payment_ids),
            details=[
                BatchItem(payment_id=pid, status="skipped", message="Dry run: not verified")
                for pid in payment_ids
            ],
        )
    if not payment_ids:
        return BatchVerificationResult()
    return await verify_batch_payments(db, payment_ids, gateway, delay_seconds)


async def get_pending_payments_stats(db: AsyncSession, now: Optional[datetime] = None) -> PendingPaymentsStats:
    now = now or datetime.utcnow()
    pending = NyscPayment.status == PaymentStatus.PENDING.value

    async def _count(*criteria) -> int:
        stmt = select(func.count(NyscPayment.id)).where(pending, *criteria)
        return (await db.execute(stmt)).scalar_one()

    oldest = (
        await db.execute(select(func.min(NyscPayment.created_at)).where(pending))
    ).scalar_one_or_none()
    return PendingPaymentsStats(
        total_pending=await _count(),
        pending_last_hour=await _count(NyscPayment.created_at >= now - timedelta(hours=1)),
        pending_last_24h=await _count(NyscPayment.created_at >= now - timedelta(days=1)),
        pending_older_than_5min=await _count(
            NyscPayment.created_at <= now - timedelta(minutes=settings.payment_verify_min_age_minutes)
        ),
        oldest_pending=oldest,
    )
