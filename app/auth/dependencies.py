from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.schemas import CurrentStaff
from app.core.config import settings
from app.core.models import Staff
from app.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


async def get_current_staff(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentStaff:
    """Resolve the authenticated staff member from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        raise credentials_exception

    staff_id_str = payload.get("sub")
    if not staff_id_str:
        raise credentials_exception
    try:
        staff_id = int(staff_id_str)
    except (TypeError, ValueError):
        raise credentials_exception

    staff = await db.get(Staff, staff_id)
    if not staff or staff.status != "ACTIVE":
        raise credentials_exception

    return CurrentStaff(id=staff.id, email=staff.email, role=staff.exeat_role)
