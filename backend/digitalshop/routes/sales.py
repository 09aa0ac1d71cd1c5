# Overview: Flask API routes for POS sales, voids and refunds.

"""
Sales routes.

SECURITY:
- Creating and viewing sales: any authenticated user (cashiers included)
- Voids and refunds: MANAGER or ADMIN
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import sales_service
from ..validation import date_param

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_range() -> tuple:
    return (
        date_param(request.args.get("start_date"), "start_date"),
        date_param(request.args.get("end_date"), "end_date"),
    )


@sales_bp.post("")
@require_auth
def create_sale():
    """
    Complete a sale: stock is deducted FEFO, movements and (for unpaid
    customer balances) an invoice are written in the same transaction.

    Request body:
        {
            "customer_id": 3,              # optional, required for credit
            "payment_method": "CASH",
            "amount_paid": "20.00",        # optional, defaults to total
            "discount_amount": "1.00",     # optional cart discount
            "items": [
                {"product_id": 1, "quantity": 2, "unit_price": "5.00"},
                {"item_type": "SERVICE", "description": "Repair", "quantity": 1, "unit_price": "10.00"}
            ]
        }
    """
    payload = request.get_json(silent=True) or {}
    try:
        sale = sales_service.create_sale(payload, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        current_app.logger.info("Sale rejected for user %s: %s", g.current_user.id, e)
        return error_from(e)
    return success(sale.to_dict(include_items=True), "Sale completed successfully", 201)


@sales_bp.get("")
@require_auth
def list_sales():
    try:
        start_date, end_date = _date_range()
        result = sales_service.list_sales(
            start_date=start_date,
            end_date=end_date,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            cashier_id=request.args.get("cashier_id", type=int),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result)


@sales_bp.get("/summary")
@require_auth
def sales_summary():
    try:
        start_date, end_date = _date_range()
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(sales_service.sales_summary(start_date, end_date))


@sales_bp.get("/top-products")
@require_auth
def top_products():
    try:
        start_date, end_date = _date_range()
    except DOMAIN_ERRORS as e:
        return error_from(e)
    limit = request.args.get("limit", 10, type=int)
    return success(sales_service.top_products(limit=limit, start_date=start_date, end_date=end_date))


@sales_bp.get("/number/<sale_number>")
@require_auth
def get_sale_by_number(sale_number: str):
    try:
        sale = sales_service.get_sale_by_number(sale_number)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(sale.to_dict(include_items=True))


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(sale.to_dict(include_items=True))


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_manager
def void_sale(sale_id: int):
    """Body: {"reason": "...", "notes": "..."}. Restores unrefunded stock."""
    payload = request.get_json(silent=True) or {}
    try:
        sale = sales_service.void_sale(
            sale_id,
            reason=payload.get("reason"),
            notes=payload.get("notes"),
            user_id=g.current_user.id,
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(sale.to_dict(include_items=True), "Sale voided successfully")


@sales_bp.post("/<int:sale_id>/refund")
@require_auth
@require_manager
def refund_sale(sale_id: int):
    """
    Request body:
        {
            "refund_type": "PARTIAL",          # or FULL
            "reason": "Damaged",
            "return_to_inventory": true,
            "items": [{"sale_item_id": 4, "quantity": 1}]
        }
    """
    payload = request.get_json(silent=True) or {}
    try:
        refund = sales_service.refund_sale(sale_id, payload, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(refund.to_dict(), "Refund processed successfully", 201)
