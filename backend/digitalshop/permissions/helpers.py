# Overview: Utility functions for permission lookups and validation.

from .definitions import PERMISSION_DEFINITIONS, ROLE_HIERARCHY, ROLES


def get_all_permission_keys():
    """Get list of all permission keys."""
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def get_categories():
    """Categories in definition order."""
    seen = []
    for perm in PERMISSION_DEFINITIONS:
        if perm[3] not in seen:
            seen.append(perm[3])
    return seen


def get_permissions_by_category(category):
    """Get all permissions in a category."""
    return [perm for perm in PERMISSION_DEFINITIONS if perm[3] == category]


def get_permission_definition(key):
    """Get full definition for a permission key."""
    for perm in PERMISSION_DEFINITIONS:
        if perm[0] == key:
            return {
                "key": perm[0],
                "name": perm[1],
                "description": perm[2],
                "category": perm[3],
            }
    return None


def validate_permission_key(key):
    """Check if a permission key is valid."""
    return key in get_all_permission_keys()


def roles_at_or_above(role):
    """ROLES with at least the given role's rank, highest first."""
    floor = ROLE_HIERARCHY[role]
    return tuple(r for r in ROLES if ROLE_HIERARCHY[r] >= floor)


def role_at_least(role, minimum):
    """False for unknown roles."""
    return role in ROLE_HIERARCHY and ROLE_HIERARCHY[role] >= ROLE_HIERARCHY[minimum]
