# Overview: Flask API routes for reading the stock movement ledger.

"""
Stock movement routes.

Read-only: movements are written by sales, goods receipts, refunds, voids
and stock adjustments, never through this blueprint.

SECURITY: All routes require authentication and inventory.movements.
"""
from flask import Blueprint, request

from ..decorators import require_auth, require_permission
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import inventory_service
from ..validation import date_param

stock_movements_bp = Blueprint("stock_movements", __name__, url_prefix="/api/stock-movements")


def _page_args() -> dict:
    return {
        "page": request.args.get("page", type=int),
        "per_page": request.args.get("per_page", type=int),
    }


@stock_movements_bp.get("")
@require_auth
@require_permission("inventory.movements")
def list_stock_movements():
    """
    Query params: product_id, batch_id, movement_type, reference_type,
    start_date, end_date (YYYY-MM-DD), page, per_page.
    """
    try:
        result = inventory_service.list_movements(
            product_id=request.args.get("product_id", type=int),
            batch_id=request.args.get("batch_id", type=int),
            movement_type=request.args.get("movement_type"),
            reference_type=request.args.get("reference_type"),
            start_date=date_param(request.args.get("start_date"), "start_date"),
            end_date=date_param(request.args.get("end_date"), "end_date"),
            **_page_args(),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result)


@stock_movements_bp.get("/summary")
@require_auth
@require_permission("inventory.movements")
def stock_movement_summary():
    return success(inventory_service.movement_summary())


@stock_movements_bp.get("/product/<int:product_id>")
@require_auth
@require_permission("inventory.movements")
def product_movements(product_id: int):
    return success(inventory_service.list_movements(product_id=product_id, **_page_args()))


@stock_movements_bp.get("/batch/<int:batch_id>")
@require_auth
@require_permission("inventory.movements")
def batch_movements(batch_id: int):
    return success(inventory_service.list_movements(batch_id=batch_id, **_page_args()))


@stock_movements_bp.get("/<int:movement_id>")
@require_auth
@require_permission("inventory.movements")
def get_stock_movement(movement_id: int):
    try:
        movement = inventory_service.get_movement(movement_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(movement)
