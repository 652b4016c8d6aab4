"""NYSC registration record and the temporary submission captured before checkout."""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.db.session import Base

# Submitted personal/academic snapshot shared by the temp submission and the registration
SNAPSHOT_FIELDS = (
    "fname",
    "lname",
    "mname",
    "gender",
    "dob",
    "marital_status",
    "phone",
    "email",
    "address",
    "state",
    "lga",
    "username",
    "matric_no",
    "department",
    "course_study",
    "level",
    "graduation_year",
    "cgpa",
    "jamb_no",
    "study_mode",
)


class _SnapshotColumns:
    fname = Column(String(100), nullable=True)
    lname = Column(String(100), nullable=True)
    mname = Column(String(100), nullable=True)
    gender = Column(String(20), nullable=True)
    dob = Column(Date, nullable=True)
    marital_status = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    state = Column(String(100), nullable=True)
    lga = Column(String(100), nullable=True)
    username = Column(String(255), nullable=True)
    matric_no = Column(String(50), nullable=True, index=True)
    department = Column(String(255), nullable=True)
    course_study = Column(String(255), nullable=True)
    level = Column(String(20), nullable=True)
    graduation_year = Column(Integer, nullable=True)
    cgpa = Column(Numeric(4, 2), nullable=True)
    jamb_no = Column(String(50), nullable=True)
    study_mode = Column(String(100), nullable=True)


class StudentNysc(_SnapshotColumns, Base):
    """is_paid implies at least one successful NyscPayment references this row (reconciliation may lag)."""

    __tablename__ = "student_nysc"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, unique=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    is_submitted = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    payments = relationship("NyscPayment", back_populates="student_nysc")


class NyscTempSubmission(_SnapshotColumns, Base):
    __tablename__ = "nysc_temp_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(100), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="pending")
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_student_nysc_data(self) -> Dict[str, Any]:
        """Snapshot for the student_nysc table, without the temp bookkeeping columns."""
        data = {field: getattr(self, field) for field in SNAPSHOT_FIELDS}
        data["student_id"] = self.student_id
        return data
