"""Exeat (leave-of-absence) requests and the staff decisions attached to them."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.enums import ApprovalStatus, ExeatStatus
from app.db.session import Base


class ExeatRequest(Base):
    """Mutated only by the workflow engine; never deleted."""

    __tablename__ = "exeat_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    is_medical = Column(Boolean, nullable=False, default=False)
    preferred_mode_of_contact = Column(String(20), nullable=True)
    parent_email = Column(String(255), nullable=True)
    parent_phone = Column(String(30), nullable=True)
    status = Column(String(30), nullable=False, default=ExeatStatus.PENDING.value, index=True)
    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student")
    approvals = relationship("ExeatApproval", back_populates="exeat_request", order_by="ExeatApproval.id")
    parent_consent = relationship("ParentConsent", back_populates="exeat_request", uselist=False)

    # Optimistic lock: UPDATE ... WHERE version_id = <read version>
    __mapper_args__ = {"version_id_col": version_id}


class ExeatApproval(Base):
    """One staff decision at one stage. Decided once, immutable afterwards."""

    __tablename__ = "exeat_approvals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    exeat_request_id = Column(
        Integer,
        ForeignKey("exeat_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="SET NULL"), nullable=True)
    role = Column(String(50), nullable=True)
    stage = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=ApprovalStatus.PENDING.value)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    exeat_request = relationship("ExeatRequest", back_populates="approvals")
    staff = relationship("Staff")
