from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.enums import ContactMethod


# ----- Exeat Request -----
class ExeatRequestResponse(BaseModel):
    id: int
    student_id: int
    reason: str
    is_medical: bool
    preferred_mode_of_contact: Optional[str] = None
    parent_email: Optional[str] = None
    parent_phone: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ----- Approve / Reject -----
class ExeatDecision(BaseModel):
    comment: Optional[str] = Field(None, max_length=2000)


class ExeatApprovalResponse(BaseModel):
    id: int
    exeat_request_id: int
    staff_id: Optional[int] = None
    role: Optional[str] = None
    stage: str
    status: str
    comment: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ----- Parent Consent -----
class SendParentConsent(BaseModel):
    method: ContactMethod = Field(ContactMethod.EMAIL, description="email, text or whatsapp")
    message: Optional[str] = Field(None, max_length=2000)


class ParentConsentResponse(BaseModel):
    """Public view of a consent. consent_status is the effective status (expired pending reads as declined)."""

    id: int
    exeat_request_id: int
    consent_status: str
    consent_method: str
    consent_message: Optional[str] = None
    consent_timestamp: Optional[datetime] = None
    expires_at: datetime


class ParentConsentView(BaseModel):
    consent: ParentConsentResponse
    student_name: str
    reason: str
    exeat_status: str


# ----- History -----
class AuditLogResponse(BaseModel):
    id: int
    actor_type: str
    staff_id: Optional[int] = None
    student_id: Optional[int] = None
    action: str
    target_type: str
    target_id: int
    details: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class ExeatHistoryResponse(BaseModel):
    exeat_request: ExeatRequestResponse
    audit_logs: List[AuditLogResponse]
    approvals: List[ExeatApprovalResponse]
