"""Student profile and academic records. Read-only sources for notifications and payment recovery."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.db.session import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fname = Column(String(100), nullable=False)
    lname = Column(String(100), nullable=False)
    mname = Column(String(100), nullable=True)
    gender = Column(String(20), nullable=True)
    dob = Column(Date, nullable=True)
    marital_status = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    email = Column(String(255), nullable=True)
    # Older records keep the login email here instead of `email`
    username = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    state = Column(String(100), nullable=True)
    lga = Column(String(100), nullable=True)
    matric_no = Column(String(50), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    academics = relationship("StudentAcademic", back_populates="student", order_by="StudentAcademic.created_at")

    @property
    def full_name(self) -> str:
        return f"{self.fname} {self.lname}".strip()

    @property
    def contact_email(self) -> Optional[str]:
        return self.email or self.username


class CourseStudy(Base):
    __tablename__ = "course_studies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)


class StudentAcademic(Base):
    __tablename__ = "student_academics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    course_study_id = Column(Integer, ForeignKey("course_studies.id", ondelete="SET NULL"), nullable=True)
    matric_no = Column(String(50), nullable=True)
    department = Column(String(255), nullable=True)
    level = Column(String(20), nullable=True)
    graduation_year = Column(Integer, nullable=True)
    cgpa = Column(Numeric(4, 2), nullable=True)
    jamb_no = Column(String(50), nullable=True)
    study_mode = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    student = relationship("Student", back_populates="academics")
    course_study = relationship("CourseStudy")
