# Overview: Flask API routes for system settings, statistics and the transaction reset.

"""
System administration routes. ADMIN only.

POST /reset is destructive: every transactional row is removed. The caller
must send the exact confirmation phrase and a reason of at least 10
characters.
"""
from flask import Blueprint, current_app, g, request

from ..cache import get_cache_stats
from ..decorators import require_admin, require_auth
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import system_service

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


@system_bp.get("/settings")
@require_auth
@require_admin
def get_settings():
    return success(system_service.get_settings())


@system_bp.put("/settings")
@require_auth
@require_admin
def update_settings():
    payload = request.get_json(silent=True) or {}
    try:
        settings = system_service.update_settings(payload, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(settings, "Settings updated successfully")


@system_bp.get("/stats")
@require_auth
@require_admin
def database_stats():
    return success(system_service.database_stats())


@system_bp.get("/cache/stats")
@require_auth
@require_admin
def cache_stats():
    return success(get_cache_stats())


@system_bp.get("/reset/preview")
@require_auth
@require_admin
def reset_preview():
    return success(system_service.reset_preview())


@system_bp.post("/reset")
@require_auth
@require_admin
def reset_transactions():
    payload = request.get_json(silent=True) or {}
    try:
        result = system_service.reset_transactions(
            payload.get("confirm_text"),
            payload.get("reason"),
            user_id=g.current_user.id,
        )
    except DOMAIN_ERRORS as e:
        current_app.logger.warning("Reset refused for user %s: %s", g.current_user.id, e)
        return error_from(e)
    return success(result, result["message"])
