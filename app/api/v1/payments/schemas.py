from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ----- Single verification -----
class PaymentVerificationResult(BaseModel):
    payment_id: int
    reference: str
    success: bool
    message: str
    old_status: Optional[str] = None  # set only when the status changed
    new_status: Optional[str] = None
    status: Optional[str] = None  # current status when nothing changed
    registration_updated: bool = False


# ----- Batch verification -----
class BatchVerifyRequest(BaseModel):
    payment_ids: List[int] = Field(..., min_length=1, max_length=100)


class BatchItem(BaseModel):
    payment_id: int
    reference: Optional[str] = None
    status: str  # verified | error | skipped
    message: str


class BatchVerificationResult(BaseModel):
    total: int = 0
    verified: int = 0
    updated: int = 0
    successful: int = 0
    failed: int = 0
    errors: int = 0
    details: List[BatchItem] = Field(default_factory=list)


# ----- Pending stats -----
class PendingPaymentsStats(BaseModel):
    total_pending: int
    pending_last_hour: int
    pending_last_24h: int
    pending_older_than_5min: int
    oldest_pending: Optional[datetime] = None


# ----- Orphan recovery -----
class RecoveryItem(BaseModel):
    payment_id: int
    student_id: int
    status: str  # recovered | would_recover | already_linked | failed
    source: Optional[str] = None  # temp_submission_session | temp_submission_student | student_profile
    student_nysc_id: Optional[int] = None
    message: str


class RecoveryReport(BaseModel):
    dry_run: bool
    total: int = 0
    recovered: int = 0
    skipped: int = 0
    failed: int = 0
    items: List[RecoveryItem] = Field(default_factory=list)
