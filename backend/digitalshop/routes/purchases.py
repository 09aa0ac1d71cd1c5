# Overview: Flask API routes for purchase orders.

"""
Purchase order routes.

SECURITY: reads need purchases.read, creating needs purchases.create and
every status change needs purchases.approve.

Lifecycle: DRAFT -> (SENT) -> APPROVED -> PARTIAL -> RECEIVED, or
CANCELLED before any goods arrive. PARTIAL and RECEIVED normally come
from finalizing goods receipts that reference the order.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import purchase_order_service

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_auth
@require_permission("purchases.read")
def list_purchase_orders():
    """Query params: status, supplier_id, page, per_page."""
    try:
        result = purchase_order_service.list_purchase_orders(
            status=request.args.get("status"),
            supplier_id=request.args.get("supplier_id", type=int),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result)


@purchases_bp.get("/summary")
@require_auth
@require_permission("purchases.read")
def purchase_order_summary():
    return success(purchase_order_service.purchase_order_summary())


@purchases_bp.get("/<int:order_id>")
@require_auth
@require_permission("purchases.read")
def get_purchase_order(order_id: int):
    try:
        order = purchase_order_service.get_purchase_order(order_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(order.to_dict(include_items=True))


@purchases_bp.post("")
@require_auth
@require_permission("purchases.create")
def create_purchase_order():
    """
    Request body:
        {
            "supplier_id": 1,
            "order_date": "2026-03-01",             # optional, defaults to today
            "expected_delivery_date": "2026-03-08", # optional
            "payment_terms": "NET30",               # optional, defaults to the supplier's
            "notes": "...",
            "items": [{"product_id": 1, "ordered_quantity": 24, "unit_price": "3.75"}]
        }
    """
    payload = request.get_json(silent=True) or {}
    try:
        order = purchase_order_service.create_purchase_order(payload, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(
        order.to_dict(include_items=True),
        f"Purchase order {order.order_number} created successfully",
        201,
    )


@purchases_bp.put("/<int:order_id>/status")
@require_auth
@require_permission("purchases.approve")
def update_purchase_order_status(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        order = purchase_order_service.update_status(
            order_id, payload.get("status"), user_id=g.current_user.id
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(order.to_dict(), f"Purchase order status updated to {order.status}")


@purchases_bp.post("/<int:order_id>/approve")
@require_auth
@require_permission("purchases.approve")
def approve_purchase_order(order_id: int):
    try:
        order = purchase_order_service.approve_purchase_order(order_id, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(order.to_dict(), "Purchase order approved successfully")


@purchases_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission("purchases.approve")
def cancel_purchase_order(order_id: int):
    try:
        order = purchase_order_service.cancel_purchase_order(order_id, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(order.to_dict(), "Purchase order cancelled successfully")
