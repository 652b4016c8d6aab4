from app.core.models.student import CourseStudy, Student, StudentAcademic
from app.core.models.staff import Staff
from app.core.models.exeat_request import ExeatApproval, ExeatRequest
from app.core.models.parent_consent import ParentConsent
from app.core.models.audit_log import AuditLog
from app.core.models.student_nysc import NyscTempSubmission, StudentNysc
from app.core.models.nysc_payment import NyscPayment

__all__ = [
    "AuditLog",
    "CourseStudy",
    "ExeatApproval",
    "ExeatRequest",
    "NyscPayment",
    "NyscTempSubmission",
    "ParentConsent",
    "Staff",
    "Student",
    "StudentAcademic",
    "StudentNysc",
]
