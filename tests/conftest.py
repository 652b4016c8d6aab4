import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional, Union

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.auth.security import create_access_token
from app.core.enums import ApprovalStatus, ExeatStatus, PaymentStatus
from app.core.exceptions import PaymentGatewayError
from app.core.models import ExeatApproval, ExeatRequest, NyscPayment, Staff, Student, StudentNysc
from app.db.session import Base, build_engine, build_sessionmaker, get_db
from app.integrations.notifier import get_notifier
from app.integrations.paystack import GatewayTransaction, get_payment_gateway
from app.main import app


class RecordingNotifier:
    """Stands in for Notifier; records what would have been sent."""

    def __init__(self) -> None:
        self.status_changes: List[Dict] = []
        self.consent_requests: List[Dict] = []

    async def send_status_change(self, student, exeat_request) -> None:
        self.status_changes.append(
            {"student_id": student.id if student else None, "exeat_id": exeat_request.id, "status": exeat_request.status}
        )

    async def send_parent_consent_request(
        self,
        parent_email,
        parent_phone,
        student_name,
        reason,
        approve_link,
        decline_link,
        expiry,
        method="email",
    ) -> None:
        self.consent_requests.append(
            {
                "parent_email": parent_email,
                "parent_phone": parent_phone,
                "student_name": student_name,
                "reason": reason,
                "approve_link": approve_link,
                "decline_link": decline_link,
                "expiry": expiry,
                "method": method,
            }
        )


class ScriptedGateway:
    """Stands in for PaystackClient; answers verify() from a per-reference script."""

    def __init__(self) -> None:
        self.script: Dict[str, Union[GatewayTransaction, Exception]] = {}
        self.calls: List[str] = []

    def will_return(self, reference: str, status: str, paid_at: Optional[str] = None, txn_id: int = 1001) -> None:
        self.script[reference] = GatewayTransaction.from_payload(
            {"id": txn_id, "status": status, "reference": reference, "amount": 3500000, "paid_at": paid_at}
        )

    def will_fail(self, reference: str, message: str = "API request failed with status 500") -> None:
        self.script[reference] = PaymentGatewayError(message, upstream_status=500)

    async def verify(self, reference: str) -> GatewayTransaction:
        self.calls.append(reference)
        answer = self.script.get(reference)
        if answer is None:
            raise PaymentGatewayError("Transaction reference not found", upstream_status=400)
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture()
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite per test so separate sessions can interleave."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return build_sessionmaker(engine)


@pytest.fixture()
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture()
async def client(
    session_factory: async_sessionmaker,
    notifier: RecordingNotifier,
    gateway: ScriptedGateway,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, one session per request."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture()
async def student(db_session: AsyncSession) -> Student:
    student = Student(
        fname="Ada",
        lname="Okafor",
        gender="Female",
        phone="08030000000",
        email="ada.okafor@student.veritas.edu.ng",
        matric_no="VUG/CSC/20/0001",
    )
    db_session.add(student)
    await db_session.commit()
    return student


@pytest.fixture()
def make_staff(db_session: AsyncSession):
    async def _make(role: str, email: Optional[str] = None) -> Staff:
        staff = Staff(fname="Staff", lname=role.title(), email=email or f"{role}@veritas.edu.ng", exeat_role=role)
        db_session.add(staff)
        await db_session.commit()
        return staff

    return _make


@pytest.fixture()
def make_exeat(db_session: AsyncSession, student: Student):
    async def _make(
        status: ExeatStatus = ExeatStatus.PENDING,
        is_medical: bool = False,
        preferred_mode_of_contact: str = "email",
    ) -> ExeatRequest:
        req = ExeatRequest(
            student_id=student.id,
            reason="Family wedding in Enugu",
            is_medical=is_medical,
            preferred_mode_of_contact=preferred_mode_of_contact,
            parent_email="parent@example.com",
            parent_phone="+2348030000001",
            status=status.value,
        )
        db_session.add(req)
        await db_session.commit()
        return req

    return _make


@pytest.fixture()
def make_approval(db_session: AsyncSession):
    async def _make(req: ExeatRequest, staff: Staff) -> ExeatApproval:
        approval = ExeatApproval(
            exeat_request_id=req.id,
            staff_id=staff.id,
            role=staff.exeat_role,
            stage=req.status,
            status=ApprovalStatus.PENDING.value,
        )
        db_session.add(approval)
        await db_session.commit()
        return approval

    return _make


@pytest.fixture()
def make_payment(db_session: AsyncSession, student: Student):
    async def _make(
        reference: str,
        status: PaymentStatus = PaymentStatus.PENDING,
        age: timedelta = timedelta(minutes=10),
        registration: Optional[StudentNysc] = None,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> NyscPayment:
        payment = NyscPayment(
            student_id=student.id,
            student_nysc_id=registration.id if registration else None,
            session_id=session_id,
            amount=Decimal("35000.00"),
            payment_reference=reference,
            status=status.value,
            payment_method="paystack",
            created_at=(now or datetime.utcnow()) - age,
        )
        db_session.add(payment)
        await db_session.commit()
        return payment

    return _make


@pytest.fixture()
async def registration(db_session: AsyncSession, student: Student) -> StudentNysc:
    reg = StudentNysc(student_id=student.id, fname="Ada", lname="Okafor", matric_no=student.matric_no)
    db_session.add(reg)
    await db_session.commit()
    return reg


@pytest.fixture()
def auth_headers():
    def _headers(staff: Staff) -> Dict[str, str]:
        token = create_access_token(subject={"sub": str(staff.id), "role": staff.exeat_role})
        return {"Authorization": f"Bearer {token}"}

    return _headers
