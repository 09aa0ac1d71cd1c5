# Overview: Flask API routes for manual stock adjustments.

"""
Stock adjustment routes.

SECURITY:
- Viewing adjustments: any authenticated user
- Creating adjustments: MANAGER or ADMIN
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import stock_adjustment_service
from ..validation import date_param

stock_adjustments_bp = Blueprint("stock_adjustments", __name__, url_prefix="/api/stock-adjustments")


@stock_adjustments_bp.get("/types")
@require_auth
def adjustment_types():
    return success(stock_adjustment_service.adjustment_types())


@stock_adjustments_bp.get("/summary")
@require_auth
def adjustment_summary():
    return success(stock_adjustment_service.adjustment_summary())


@stock_adjustments_bp.get("")
@require_auth
def list_adjustments():
    """
    Query params: product_id, adjustment_type, start_date, end_date (YYYY-MM-DD),
    page / per_page (optional).
    """
    try:
        result = stock_adjustment_service.list_adjustments(
            product_id=request.args.get("product_id", type=int),
            adjustment_type=request.args.get("adjustment_type"),
            start_date=date_param(request.args.get("start_date"), "start_date"),
            end_date=date_param(request.args.get("end_date"), "end_date"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result)


@stock_adjustments_bp.get("/<int:adjustment_id>")
@require_auth
def get_adjustment(adjustment_id: int):
    try:
        movement = stock_adjustment_service.get_adjustment(adjustment_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(movement.to_dict())


@stock_adjustments_bp.post("")
@require_auth
@require_manager
def create_adjustment():
    """
    Create one stock adjustment.

    Request body:
        {
            "product_id": 1,
            "adjustment_type": "DAMAGE",
            "quantity": 2,
            "reason": "Dropped on delivery",
            "batch_id": 5,          # optional
            "unit_cost": "4.50",    # optional
            "notes": "..."          # optional
        }
    """
    payload = request.get_json(silent=True) or {}
    try:
        movement = stock_adjustment_service.create_adjustment(payload, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        current_app.logger.warning("Stock adjustment rejected: %s", e)
        return error_from(e)
    return success(movement.to_dict(), "Stock adjustment created successfully", 201)
