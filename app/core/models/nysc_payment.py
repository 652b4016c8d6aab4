"""NYSC registration fee payment attempts. payment_reference is the gateway idempotency key."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from app.core.enums import PaymentStatus
from app.db.session import Base


class NyscPayment(Base):
    """One payment attempt. May exist before, during, or detached from its registration."""

    __tablename__ = "nysc_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    student_nysc_id = Column(Integer, ForeignKey("student_nysc.id", ondelete="SET NULL"), nullable=True, index=True)
    session_id = Column(String(100), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_reference = Column(String(100), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    payment_method = Column(String(30), nullable=True)
    gateway_response = Column(JSON, nullable=True)
    transaction_id = Column(String(100), nullable=True)
    payment_date = Column(DateTime, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student")
    student_nysc = relationship("StudentNysc", back_populates="payments")
