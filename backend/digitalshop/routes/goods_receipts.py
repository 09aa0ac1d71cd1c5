# Overview: Flask API routes for goods receipts (stock intake from suppliers).

"""
Goods receipt routes.

SECURITY: All routes require authentication; writes require MANAGER or ADMIN.

Lifecycle: DRAFT -> COMPLETED (finalize) or DRAFT -> CANCELLED (cancel).
Only DRAFT receipts may be edited.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import goods_receipt_service

goods_receipts_bp = Blueprint("goods_receipts", __name__, url_prefix="/api/goods-receipts")


@goods_receipts_bp.get("")
@require_auth
def list_goods_receipts():
    result = goods_receipt_service.list_goods_receipts(
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return success(result)


@goods_receipts_bp.get("/summary")
@require_auth
def goods_receipt_summary():
    return success(goods_receipt_service.goods_receipt_summary())


@goods_receipts_bp.get("/<int:receipt_id>")
@require_auth
def get_goods_receipt(receipt_id: int):
    try:
        receipt = goods_receipt_service.get_goods_receipt(receipt_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(receipt.to_dict(include_items=True))


@goods_receipts_bp.post("")
@require_auth
@require_manager
def create_goods_receipt():
    """
    Request body:
        {
            "supplier_id": 1,                       # optional
            "purchase_order_id": 3,                 # optional, items default to what is outstanding
            "received_date": "2025-01-15T10:00:00Z", # optional
            "auto_complete": false,
            "items": [
                {"product_id": 1, "quantity": 10, "cost_price": "2.50",
                 "batch_number": "LOT-1", "expiry_date": "2026-01-01"}
            ]
        }

    Returns 201 with {"goods_receipt", "cost_alerts"}.
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = goods_receipt_service.create_goods_receipt(payload, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result, "Goods receipt created successfully", 201)


@goods_receipts_bp.put("/<int:receipt_id>/items/<int:item_id>")
@require_auth
@require_manager
def update_goods_receipt_item(receipt_id: int, item_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        receipt = goods_receipt_service.update_goods_receipt_item(receipt_id, item_id, payload)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(receipt.to_dict(include_items=True), "Goods receipt item updated")


@goods_receipts_bp.post("/<int:receipt_id>/cancel")
@require_auth
@require_manager
def cancel_goods_receipt(receipt_id: int):
    try:
        receipt = goods_receipt_service.cancel_goods_receipt(receipt_id, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(receipt.to_dict(), "Goods receipt cancelled")


@goods_receipts_bp.post("/<int:receipt_id>/finalize")
@require_auth
@require_manager
def finalize_goods_receipt(receipt_id: int):
    try:
        result = goods_receipt_service.finalize_goods_receipt(receipt_id, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result, "Goods receipt finalized successfully")
