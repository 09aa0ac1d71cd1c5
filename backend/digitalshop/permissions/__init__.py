# Overview: Permission system package.
# Re-exports all public APIs so callers import from digitalshop.permissions.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    DEFAULT_ROLE_PERMISSIONS,
    ROLES,
    ROLE_HIERARCHY,
)
from .helpers import (
    get_all_permission_keys,
    get_categories,
    get_permissions_by_category,
    get_permission_definition,
    role_at_least,
    roles_at_or_above,
    validate_permission_key,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLES",
    "ROLE_HIERARCHY",
    "get_all_permission_keys",
    "get_categories",
    "get_permissions_by_category",
    "get_permission_definition",
    "role_at_least",
    "roles_at_or_above",
    "validate_permission_key",
]
