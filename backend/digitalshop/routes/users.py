# Overview: Flask API routes for user administration.

from flask import Blueprint, g, request

from ..decorators import is_manager, require_admin, require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import error, paginate, success
from ..services import user_service
from ..validation import bool_param

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/stats")
@require_auth
@require_manager
def user_stats():
    return success(user_service.user_stats())


@users_bp.get("/role/<role>")
@require_auth
@require_manager
def users_by_role(role: str):
    try:
        users = user_service.users_by_role(role)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success([u.to_dict() for u in users])


@users_bp.get("")
@require_auth
@require_manager
def list_users():
    """
    Query params:
    - role, is_active (true/false), search (name or email)
    - page / per_page (optional)
    """
    is_active = request.args.get("is_active")
    query = user_service.list_users_query(
        role=request.args.get("role"),
        is_active=None if is_active is None else bool_param(is_active),
        search=request.args.get("search"),
    )
    result = paginate(
        query,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        serializer=lambda u: u.to_dict(),
    )
    return success(result)


@users_bp.get("/<int:user_id>")
@require_auth
def get_user(user_id: int):
    actor = g.current_user
    if actor.id != user_id and not is_manager(actor):
        return error("Insufficient permissions", 403)
    try:
        user = user_service.get_user(user_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(user.to_dict())


@users_bp.put("/<int:user_id>")
@require_auth
def update_user(user_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        user = user_service.update_user(user_id, payload, actor=g.current_user)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(user.to_dict(), "User updated successfully")


@users_bp.post("/<int:user_id>/reset-password")
@require_auth
@require_admin
def reset_password(user_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        user_service.reset_password(user_id, payload.get("new_password"), actor=g.current_user)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(None, "Password reset successfully")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def delete_user(user_id: int):
    try:
        user = user_service.deactivate_user(user_id, actor=g.current_user)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(user.to_dict(), "User deactivated successfully")
