import asyncio
from datetime import timedelta

import pytest

from app.core.exceptions import JobFailedError
from app.core.models import NyscPayment
from app.jobs import verify_pending_payments as job_module
from app.jobs.verify_pending_payments import run_verify_pending_payments


class HangingGateway:
    """Hangs on the first `hang_for` calls, then delegates to the scripted gateway."""

    def __init__(self, inner, hang_for: int) -> None:
        self.inner = inner
        self.hang_for = hang_for
        self.calls = 0

    async def verify(self, reference: str):
        self.calls += 1
        if self.calls <= self.hang_for:
            await asyncio.sleep(10)
        return await self.inner.verify(reference)


@pytest.mark.asyncio
async def test_job_retries_after_timeout(session_factory, db_session, make_payment, gateway) -> None:
    payment = await make_payment("J-1", age=timedelta(minutes=20))
    gateway.will_return("J-1", "success")
    hanging = HangingGateway(gateway, hang_for=1)

    result = await run_verify_pending_payments(
        hanging,
        session_factory=session_factory,
        timeout_seconds=0.2,
        max_attempts=3,
    )

    assert hanging.calls == 2
    assert result.updated == 1
    stored = await db_session.get(NyscPayment, payment.id, populate_existing=True)
    assert stored.status == "successful"


@pytest.mark.asyncio
async def test_job_fails_after_exhausting_attempts(session_factory, make_payment, gateway) -> None:
    await make_payment("J-2", age=timedelta(minutes=20))
    hanging = HangingGateway(gateway, hang_for=99)

    with pytest.raises(JobFailedError) as exc:
        await run_verify_pending_payments(
            hanging,
            session_factory=session_factory,
            timeout_seconds=0.1,
            max_attempts=2,
        )

    assert hanging.calls == 2
    assert "after 2 attempts" in exc.value.message


@pytest.mark.asyncio
async def test_job_with_nothing_pending(session_factory, gateway) -> None:
    result = await run_verify_pending_payments(gateway, session_factory=session_factory)

    assert result.total == 0
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_job_retries_after_unexpected_error(session_factory, monkeypatch, gateway) -> None:
    real_sweep = job_module.verify_pending_payments
    attempts = []

    async def flaky_sweep(db, gw, **kwargs):
        attempts.append(kwargs)
        if len(attempts) == 1:
            raise RuntimeError("sweep crashed")
        return await real_sweep(db, gw, **kwargs)

    monkeypatch.setattr(job_module, "verify_pending_payments", flaky_sweep)

    result = await run_verify_pending_payments(gateway, session_factory=session_factory, max_attempts=2)

    assert len(attempts) == 2
    assert result.total == 0
