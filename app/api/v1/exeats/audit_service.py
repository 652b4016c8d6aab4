"""
Audit logging for exeat workflow transitions. Call on every state change, inside the
same transaction as the change itself.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import Actor
from app.core.models import AuditLog

logger = logging.getLogger(__name__)

TARGET_EXEAT_REQUEST = "exeat_request"


def transition_details(from_status: str, to_status: str, comment: Optional[str] = None) -> str:
    details = f"Status changed from {from_status} to {to_status}"
    if comment:
        details += f" | Comment: {comment}"
    return details


async def log_audit(
    db: AsyncSession,
    actor: Actor,
    student_id: Optional[int],
    action: str,
    target_id: int,
    details: str,
    *,
    target_type: str = TARGET_EXEAT_REQUEST,
) -> AuditLog:
    """Append one audit log entry. Caller must commit."""
    entry = AuditLog(
        actor_type=actor.type.value,
        staff_id=actor.staff_id,
        student_id=student_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details=details,
        timestamp=datetime.utcnow(),
    )
    db.add(entry)
    await db.flush()
    logger.info(
        "Created audit log",
        extra={"target_id": target_id, "audit_log_id": entry.id, "action": action},
    )
    return entry
