from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String

from app.db.session import Base

# Exeat roles; each maps to the stages it may act on (see exeats.workflow.ROLE_STAGES)
EXEAT_ROLE_CMD = "cmd"
EXEAT_ROLE_DEPUTY_DEAN = "deputy_dean"
EXEAT_ROLE_DEAN = "dean"
EXEAT_ROLE_HOSTEL_ADMIN = "hostel_admin"
EXEAT_ROLE_SECURITY = "security"
EXEAT_ROLE_ADMIN = "admin"


class Staff(Base):
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fname = Column(String(100), nullable=False)
    lname = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    exeat_role = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="ACTIVE")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
