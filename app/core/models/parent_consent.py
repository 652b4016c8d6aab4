"""Parent consent solicitation: at most one row per exeat request, resolved through its token."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.enums import ConsentStatus
from app.db.session import Base


class ParentConsent(Base):
    __tablename__ = "parent_consents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    exeat_request_id = Column(
        Integer,
        ForeignKey("exeat_requests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    consent_status = Column(String(20), nullable=False, default=ConsentStatus.PENDING.value)
    consent_method = Column(String(20), nullable=False)
    consent_token = Column(String(128), nullable=False, unique=True, index=True)
    consent_message = Column(Text, nullable=True)
    consent_timestamp = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    exeat_request = relationship("ExeatRequest", back_populates="parent_consent")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) > self.expires_at

    def effective_status(self, now: Optional[datetime] = None) -> str:
        """Stored status, except an unanswered consent past its expiry reads as declined."""
        if self.consent_status == ConsentStatus.PENDING.value and self.is_expired(now):
            return ConsentStatus.DECLINED.value
        return self.consent_status
