from typing import Optional

from pydantic import BaseModel


class CurrentStaff(BaseModel):
    """Lightweight representation of the authenticated staff member for role checks."""

    id: int
    email: str
    role: Optional[str] = None  # exeat role (cmd, deputy_dean, dean, hostel_admin, security, admin)
