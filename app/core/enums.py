from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ExeatStatus(str, Enum):
    PENDING = "pending"
    CMD_REVIEW = "cmd_review"
    DEPUTY_DEAN_REVIEW = "deputy-dean_review"
    PARENT_CONSENT = "parent_consent"
    DEAN_REVIEW = "dean_review"
    HOSTEL_SIGNOUT = "hostel_signout"
    SECURITY_SIGNOUT = "security_signout"
    SECURITY_SIGNIN = "security_signin"
    HOSTEL_SIGNIN = "hostel_signin"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ConsentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class ContactMethod(str, Enum):
    EMAIL = "email"
    TEXT = "text"
    WHATSAPP = "whatsapp"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"


class ActorType(str, Enum):
    STUDENT = "student"
    STAFF = "staff"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Who performed an action: a student, a staff member, or the system (parent links, jobs)."""

    type: ActorType
    id: Optional[int] = None

    @classmethod
    def staff(cls, staff_id: int) -> "Actor":
        return cls(ActorType.STAFF, staff_id)

    @classmethod
    def student(cls, student_id: int) -> "Actor":
        return cls(ActorType.STUDENT, student_id)

    @classmethod
    def system(cls) -> "Actor":
        return cls(ActorType.SYSTEM)

    @property
    def staff_id(self) -> Optional[int]:
        return self.id if self.type == ActorType.STAFF else None
