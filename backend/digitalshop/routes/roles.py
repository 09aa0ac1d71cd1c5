# Overview: Flask API routes for roles and their permission grants.

"""
Role routes.

The role set is fixed (ADMIN > MANAGER > CASHIER > STAFF); what can change
is which permission keys each role holds. ADMIN's grants are locked.

SECURITY: reads need authentication; changing grants needs settings.roles.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import permission_service

roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


@roles_bp.get("/permissions")
@require_auth
def permission_catalog():
    return success(permission_service.permission_catalog())


@roles_bp.get("")
@require_auth
def list_roles():
    return success(permission_service.list_roles())


@roles_bp.get("/<role>")
@require_auth
def get_role(role: str):
    try:
        data = permission_service.get_role(role)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(data)


@roles_bp.put("/<role>")
@require_auth
@require_permission("settings.roles")
def update_role(role: str):
    """Request body: {"permissions": ["sales.read", "sales.create", ...]}"""
    payload = request.get_json(silent=True) or {}
    try:
        data = permission_service.set_role_permissions(
            role, payload.get("permissions"), user_id=g.current_user.id
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(data, "Role updated successfully")
