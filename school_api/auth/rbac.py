from fastapi import Depends, HTTPException, status

from school_api.auth.dependencies import get_current_user
from school_api.auth.schemas import CurrentUser
from school_api.core.enums import UserRole


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given roles.

    Example:
        dependencies=[Depends(require_roles(UserRole.TEACHER, UserRole.SCHOOL_ADMIN))]
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker
