from fastapi import Depends, Header
from pydantic import BaseModel
from typing import Optional

from portal.core.exceptions import AuthenticationError, InsufficientPermissionsError

ADMIN_ROLES = ("admin", "hr")


class CurrentUser(BaseModel):
    """Caller identity, already resolved by the upstream auth layer."""
    id: str
    role: str = "employee"

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> CurrentUser:
    """Get current authenticated user."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Missing caller identity")

    return CurrentUser(id=x_user_id.strip(), role=(x_user_role or "employee").strip().lower())


def get_current_admin_user(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Get current authenticated admin user."""
    if not current_user.is_admin:
        raise InsufficientPermissionsError(
            detail="Not enough permissions",
            error_data={"role": current_user.role}
        )
    return current_user


def resolve_employee_id(current_user: CurrentUser, employee_id: Optional[str] = None) -> str:
    """
    The employee a request acts on.

    Defaults to the caller. Only admins and HR may name somebody else.
    """
    if not employee_id or employee_id == current_user.id:
        return current_user.id

    if not current_user.is_admin:
        raise InsufficientPermissionsError(
            detail="Employees can only act on their own records",
            error_data={"employee_id": employee_id}
        )
    return employee_id
