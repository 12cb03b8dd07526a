import logging
from typing import Dict

from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser

logger = logging.getLogger(__name__)

# Roles that hold every permission in their tenant
UNRESTRICTED_ROLES = ("SUPER_ADMIN", "PLATFORM_ADMIN")


def has_permission(user: CurrentUser, module: str, action: str) -> bool:
    if user.role in UNRESTRICTED_ROLES:
        return True
    permissions: Dict[str, Dict[str, bool]] = user.permissions or {}
    return bool(permissions.get(module, {}).get(action, False))


def check_permission(module: str, action: str):
    """
    Dependency factory to enforce a specific permission.

    Example:
        Depends(check_permission("students", "create"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if not has_permission(current_user, module, action):
            logger.warning(
                "User %s (%s) denied %s.%s in tenant %s",
                current_user.id,
                current_user.role,
                module,
                action,
                current_user.tenant_id,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

    return _checker
