# Overview: Flask API routes for parked (held) POS carts.

"""
Hold routes. A hold is private to the cashier who created it; touching
somebody else's hold answers 403 and an expired one answers 410.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import hold_service

holds_bp = Blueprint("holds", __name__, url_prefix="/api/pos/hold")


@holds_bp.post("")
@require_auth
def create_hold():
    payload = request.get_json(silent=True) or {}
    try:
        hold = hold_service.create_hold(payload, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(hold.to_dict(), "Order held successfully", 201)


@holds_bp.get("")
@require_auth
def list_holds():
    holds = hold_service.list_active_holds(g.current_user.id)
    return success([h.to_dict(include_items=False) for h in holds])


@holds_bp.get("/<int:hold_id>")
@require_auth
def get_hold(hold_id: int):
    try:
        hold = hold_service.get_hold_for_user(hold_id, g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(hold.to_dict())


@holds_bp.post("/<int:hold_id>/resume")
@require_auth
def resume_hold(hold_id: int):
    """Hand the cart back to the POS; the hold becomes RESUMED and cannot be reused."""
    try:
        hold = hold_service.resume_hold(hold_id, g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(hold.to_dict(), "Order resumed successfully")


@holds_bp.delete("/<int:hold_id>")
@require_auth
def cancel_hold(hold_id: int):
    try:
        hold_service.cancel_hold(hold_id, g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(None, "Hold order cancelled")
