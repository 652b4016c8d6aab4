from fastapi import Depends, HTTPException, status

from app.api.v1.exeats.workflow import allowed_stages
from app.auth.dependencies import get_current_staff
from app.auth.schemas import CurrentStaff
from app.core.models.staff import EXEAT_ROLE_ADMIN


async def require_admin(
    current_staff: CurrentStaff = Depends(get_current_staff),
) -> CurrentStaff:
    """Require the admin exeat role. Used for payment reconciliation endpoints."""
    if current_staff.role != EXEAT_ROLE_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only an administrator can perform this action",
        )
    return current_staff


async def require_exeat_staff(
    current_staff: CurrentStaff = Depends(get_current_staff),
) -> CurrentStaff:
    """Require an exeat role mapped to at least one workflow stage."""
    if not current_staff.role or not allowed_stages([current_staff.role]):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return current_staff
