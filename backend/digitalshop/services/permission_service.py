# Overview: Role -> permission key resolution backed by the role_permissions table.

"""
Permission checks.

DESIGN PRINCIPLES:
- Fail closed: unknown roles and unknown keys are denied
- Grants live in role_permissions and are seeded from DEFAULT_ROLE_PERMISSIONS
- Seeding is idempotent; existing grants (including manual ones) are kept
"""

import logging

from ..extensions import db
from ..models import RolePermission
from ..permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    ROLE_HIERARCHY,
    ROLES,
    get_categories,
    get_permission_definition,
    get_permissions_by_category,
    validate_permission_key,
)
from ..validation import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    status = 403


def seed_role_permissions() -> int:
    """Insert any missing default grants. Returns how many were added."""
    existing = {
        (rp.role, rp.permission_key)
        for rp in db.session.query(RolePermission).all()
    }
    added = 0
    for role, keys in DEFAULT_ROLE_PERMISSIONS.items():
        for key in keys:
            if (role, key) in existing:
                continue
            db.session.add(RolePermission(role=role, permission_key=key))
            added += 1
    db.session.commit()
    if added:
        logger.info("Seeded %d role permissions", added)
    return added


def get_role_permissions(role: str) -> list[str]:
    rows = (
        db.session.query(RolePermission.permission_key)
        .filter(RolePermission.role == role)
        .order_by(RolePermission.permission_key.asc())
        .all()
    )
    return [row[0] for row in rows]


def role_has_permission(role: str, permission_key: str) -> bool:
    if not role or not permission_key:
        return False
    return (
        db.session.query(RolePermission.id)
        .filter_by(role=role, permission_key=permission_key)
        .first()
        is not None
    )


def require_permission(user, permission_key: str) -> None:
    """Raise PermissionDeniedError unless the user's role holds the key."""
    if not role_has_permission(user.role, permission_key):
        raise PermissionDeniedError(f"User lacks permission: {permission_key}")


def _check_grant_args(role: str, permission_key: str) -> str:
    role = (role or "").upper()
    if role not in ROLES:
        raise ValidationError(f"Unknown role: {role}")
    if not validate_permission_key(permission_key):
        raise ValidationError(f"Unknown permission: {permission_key}")
    return role


def grant_permission(role: str, permission_key: str) -> bool:
    """Returns False when the grant already existed."""
    role = _check_grant_args(role, permission_key)
    if role_has_permission(role, permission_key):
        return False
    db.session.add(RolePermission(role=role, permission_key=permission_key))
    db.session.commit()
    logger.info("Granted %s to %s", permission_key, role)
    return True


def revoke_permission(role: str, permission_key: str) -> bool:
    """Returns False when there was nothing to revoke."""
    role = _check_grant_args(role, permission_key)
    deleted = (
        db.session.query(RolePermission)
        .filter_by(role=role, permission_key=permission_key)
        .delete()
    )
    db.session.commit()
    if deleted:
        logger.info("Revoked %s from %s", permission_key, role)
    return bool(deleted)


# -- Role administration --

# Grants for these roles cannot be edited through the API
LOCKED_ROLES = {"ADMIN"}


def permission_catalog() -> list[dict]:
    """Every permission, grouped by category in definition order."""
    return [
        {
            "category": category,
            "permissions": [get_permission_definition(perm[0]) for perm in get_permissions_by_category(category)],
        }
        for category in get_categories()
    ]


def _role_or_404(role: str) -> str:
    role = (role or "").upper()
    if role not in ROLES:
        raise NotFoundError("Role not found")
    return role


def get_role(role: str) -> dict:
    role = _role_or_404(role)
    keys = get_role_permissions(role)
    return {
        "role": role,
        "level": ROLE_HIERARCHY[role],
        "is_locked": role in LOCKED_ROLES,
        "permission_count": len(keys),
        "permissions": [get_permission_definition(key) or {"key": key} for key in keys],
    }


def list_roles() -> list[dict]:
    """All roles, highest privilege first, with their granted keys."""
    result = []
    for role in ROLES:
        keys = get_role_permissions(role)
        result.append({
            "role": role,
            "level": ROLE_HIERARCHY[role],
            "is_locked": role in LOCKED_ROLES,
            "permission_count": len(keys),
            "permissions": keys,
        })
    return result


def set_role_permissions(role: str, keys, *, user_id: int) -> dict:
    """Replace a role's grants with exactly ``keys``."""
    role = _role_or_404(role)
    if role in LOCKED_ROLES:
        raise ValidationError(f"Cannot modify permissions of the {role} role")
    if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
        raise ValidationError("permissions must be a list of permission keys")
    unknown = sorted({k for k in keys if not validate_permission_key(k)})
    if unknown:
        raise ValidationError(f"Unknown permission: {', '.join(unknown)}")

    wanted = set(keys)
    current = set(get_role_permissions(role))
    for key in current - wanted:
        db.session.query(RolePermission).filter_by(role=role, permission_key=key).delete()
    for key in sorted(wanted - current):
        db.session.add(RolePermission(role=role, permission_key=key))
    db.session.commit()
    logger.info(
        "Role %s permissions replaced by user %s (+%d, -%d)",
        role, user_id, len(wanted - current), len(current - wanted),
    )
    return get_role(role)
