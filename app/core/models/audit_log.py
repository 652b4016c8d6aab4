"""
Audit log for exeat workflow transitions. Append-only: every status change writes one row,
and rows are never updated or deleted.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import relationship

from app.core.enums import ActorType
from app.db.session import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_type = Column(String(20), nullable=False, default=ActorType.SYSTEM.value)
    staff_id = Column(Integer, ForeignKey("staff.id", ondelete="SET NULL"), nullable=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(100), nullable=False)
    target_type = Column(String(50), nullable=False)
    target_id = Column(Integer, nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    staff = relationship("Staff")


@event.listens_for(AuditLog, "before_update")
def _reject_update(mapper, connection, target) -> None:
    raise ValueError("Audit log entries are immutable")


@event.listens_for(AuditLog, "before_delete")
def _reject_delete(mapper, connection, target) -> None:
    raise ValueError("Audit log entries cannot be deleted")
