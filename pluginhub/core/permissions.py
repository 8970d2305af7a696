"""
RBAC (Role-Based Access Control) permission system
"""

from enum import Enum
from typing import Optional, Set
from fastapi import Depends
import structlog

from pluginhub.core.dependencies import get_current_user
from pluginhub.core.errors import PlatformError
from pluginhub.schemas.token import TokenPayload

logger = structlog.get_logger(__name__)


class Permission(str, Enum):
    """Permission definitions"""
    # Plugin management
    PLUGINS_VIEW = "plugins.view"
    PLUGINS_INSTALL = "plugins.install"
    PLUGINS_ENABLE = "plugins.enable"
    PLUGINS_DISABLE = "plugins.disable"
    PLUGINS_UNINSTALL = "plugins.uninstall"
    PLUGINS_CONFIGURE = "plugins.configure"

    # SaaS administration
    TENANTS_MANAGE = "saas.tenants.manage"
    LICENSES_MANAGE = "saas.licenses.manage"
    USAGE_VIEW = "saas.usage.view"


class Role(int, Enum):
    """Built-in roles, keyed by role id"""
    ADMIN = 1
    USER = 2
    MODERATOR = 3


# Role permission mapping
ROLE_PERMISSIONS = {
    # Admins have all permissions
    Role.ADMIN: set(Permission),
    Role.MODERATOR: {
        Permission.PLUGINS_VIEW,
        Permission.PLUGINS_CONFIGURE,
        Permission.USAGE_VIEW,
    },
    Role.USER: {
        Permission.PLUGINS_VIEW,
    },
}


def get_permissions_for_role(role_id: Optional[int]) -> Set[Permission]:
    """Get permissions for a given role id"""
    if role_id is None:
        return set()
    try:
        return ROLE_PERMISSIONS.get(Role(role_id), set())
    except ValueError:
        return set()


def has_permission(required_permission: Permission, user_permissions: Set[Permission]) -> bool:
    """Check if user has required permission"""
    return required_permission in user_permissions


def require_permission(required_permission: Permission):
    """Dependency factory to check permissions"""
    async def check_permission(user: TokenPayload = Depends(get_current_user)) -> TokenPayload:
        if not has_permission(required_permission, get_permissions_for_role(user.role_id)):
            logger.info(f"Permission {required_permission.value} denied for user {user.sub}")
            raise PlatformError(
                403,
                "Forbidden",
                f"Permission required: {required_permission.value}",
            )
        return user
    return check_permission
