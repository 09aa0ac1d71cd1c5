# Overview: Flask API routes for business expenses.

"""
Expense routes.

SECURITY: viewing requires authentication; recording, editing and deleting
expenses requires MANAGER or ADMIN.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..models import Expense
from ..responses import success
from ..services import expense_service
from ..validation import ModelValidationPolicy, date_param, validate_payload

EXPENSE_POLICY = ModelValidationPolicy(
    writable_fields=set(expense_service.EXPENSE_MUTABLE_FIELDS),
    required_on_create={"category", "description", "amount"},
)

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


def _date_range() -> dict:
    return {
        "start_date": date_param(request.args.get("start_date"), "start_date"),
        "end_date": date_param(request.args.get("end_date"), "end_date"),
    }


@expenses_bp.get("")
@require_auth
def list_expenses():
    try:
        result = expense_service.list_expenses(
            **_date_range(),
            category=request.args.get("category"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result)


@expenses_bp.get("/categories")
@require_auth
def list_categories():
    return success([c.to_dict() for c in expense_service.list_categories()])


@expenses_bp.get("/summary")
@require_auth
def expense_summary():
    try:
        return success(expense_service.expense_summary(**_date_range()))
    except DOMAIN_ERRORS as e:
        return error_from(e)


@expenses_bp.get("/by-category")
@require_auth
def expenses_by_category():
    try:
        return success(expense_service.expenses_by_category(**_date_range()))
    except DOMAIN_ERRORS as e:
        return error_from(e)


@expenses_bp.get("/<int:expense_id>")
@require_auth
def get_expense(expense_id: int):
    try:
        expense = expense_service.get_expense(expense_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(expense.to_dict())


@expenses_bp.post("")
@require_auth
@require_manager
def create_expense():
    """
    Request body:
        {
            "category": "Rent",
            "description": "January rent",
            "amount": "1200.00",
            "expense_date": "2025-01-01",   # optional, defaults to today
            "payment_method": "BANK_TRANSFER",
            "vendor_name": "Landlord Ltd"
        }
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=False)
        expense = expense_service.create_expense(patch=patch, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(expense.to_dict(), "Expense recorded successfully", 201)


@expenses_bp.put("/<int:expense_id>")
@require_auth
@require_manager
def update_expense(expense_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Expense, payload=payload, policy=EXPENSE_POLICY, partial=True)
        expense = expense_service.update_expense(expense_id=expense_id, patch=patch)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(expense.to_dict(), "Expense updated successfully")


@expenses_bp.delete("/<int:expense_id>")
@require_auth
@require_manager
def delete_expense(expense_id: int):
    try:
        expense_service.delete_expense(expense_id=expense_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(None, "Expense deleted successfully")
