"""
Security guards for role-based and ownership-based access control.
"""

from typing import Any, List, Optional
from fastapi import Depends
from backend.app.models.enums import UserRole
from backend.app.core.dependencies import get_current_user
from backend.app.core.exceptions import InsufficientPermissionsError, ResourceNotFoundError


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    The role is the one stored on the user row (see get_current_user),
    never the claim inside the token.

    Usage:
        @router.post("/teacher/slots")
        async def create_slot(current_user: dict = Depends(require_role([UserRole.TEACHER]))):
            ...

    Raises:
        InsufficientPermissionsError (403) if the user's role is not allowed
    """
    allowed = {r.value for r in allowed_roles}

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user.get("role") not in allowed:
            raise InsufficientPermissionsError(
                message=f"Access denied. Required role: {', '.join(sorted(allowed))}",
                details={"role": current_user.get("role")}
            )
        return current_user

    return role_checker


def ensure_owned(resource: Optional[Any], owner_id: int, current_user: dict, name: str, resource_id: int):
    """
    Return `resource` if it exists and belongs to the caller.

    Someone else's resource answers 404, not 403, so ids of other
    teachers' slots are not confirmed to exist.
    """
    if resource is None or owner_id != current_user["user_id"]:
        raise ResourceNotFoundError(name, resource_id)
    return resource
