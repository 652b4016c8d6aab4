"""
Scheduled re-verification of pending payments.

Runs the pending-payment sweep under a timeout and retries it a bounded number of times.
Scheduling (e.g. every 10 minutes from cron) is deployment configuration.
"""

import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.api.v1.payments.schemas import BatchVerificationResult
from app.api.v1.payments.service import verify_pending_payments
from app.core.config import settings
from app.core.exceptions import JobFailedError
from app.db.session import AsyncSessionLocal
from app.integrations.paystack import PaystackClient

logger = logging.getLogger(__name__)


async def run_verify_pending_payments(
    gateway: Optional[PaystackClient] = None,
    *,
    session_factory: async_sessionmaker = AsyncSessionLocal,
    force: bool = False,
    limit: Optional[int] = None,
    dry_run: bool = False,
    timeout_seconds: Optional[float] = None,
    max_attempts: Optional[int] = None,
    retry_delay_seconds: float = 0.0,
) -> BatchVerificationResult:
    """Each attempt gets a fresh session. Raises JobFailedError once every attempt has failed."""
    gateway = gateway or PaystackClient.from_settings(settings)
    timeout = settings.payment_job_timeout_seconds if timeout_seconds is None else timeout_seconds
    attempts = settings.payment_job_max_attempts if max_attempts is None else max_attempts

    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            async with session_factory() as db:
                result = await asyncio.wait_for(
                    verify_pending_payments(db, gateway, force=force, limit=limit, dry_run=dry_run),
                    timeout=timeout,
                )
            logger.info(
                "Pending payment verification job finished",
                extra={"attempt": attempt, "total": result.total, "updated": result.updated, "errors": result.errors},
            )
            return result
        except Exception as e:
            last_error = e
            logger.warning(
                "Pending payment verification attempt failed",
                extra={"attempt": attempt, "max_attempts": attempts, "error": repr(e)},
            )
            if attempt < attempts and retry_delay_seconds:
                await asyncio.sleep(retry_delay_seconds)

    logger.error(
        "Pending payment verification job failed",
        extra={"max_attempts": attempts, "error": repr(last_error)},
    )
    raise JobFailedError(f"Pending payment verification failed after {attempts} attempts: {last_error!r}") from last_error
