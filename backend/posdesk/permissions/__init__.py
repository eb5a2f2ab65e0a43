# Overview: Permission system package.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    RETURN_PERMISSIONS,
    CUSTOMER_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS
from .helpers import validate_permission_code

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "RETURN_PERMISSIONS",
    "CUSTOMER_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "validate_permission_code",
]
