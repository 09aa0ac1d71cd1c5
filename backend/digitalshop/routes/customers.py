# Overview: Flask API routes for customers, their statements and credit checks.

"""
Customer routes.

SECURITY: All routes require authentication; create/update/delete require
MANAGER or ADMIN. Deleting is a soft delete.

Balances are never written through this API; they follow the customer's
open invoices.
"""
from flask import Blueprint, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..models import Customer
from ..responses import success
from ..services import customer_service, invoice_service
from ..validation import ModelValidationPolicy, bool_param, date_param, money, to_decimal, validate_payload

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=set(customer_service.CUSTOMER_MUTABLE_FIELDS),
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    result = customer_service.list_customers(
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        include_inactive=bool_param(request.args.get("include_inactive")),
    )
    return success(result)


@customers_bp.get("/with-balance")
@require_auth
def customers_with_balance():
    return success([c.to_dict() for c in customer_service.customers_with_balance()])


@customers_bp.get("/search")
@require_auth
def search_customers():
    customers = customer_service.search_customers(request.args.get("q", ""))
    return success([c.to_dict() for c in customers])


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(customer.to_dict())


@customers_bp.get("/<int:customer_id>/transactions")
@require_auth
def customer_transactions(customer_id: int):
    """Sales, invoices and payments merged, newest first."""
    limit = request.args.get("limit", 50, type=int)
    try:
        rows = customer_service.customer_transactions(customer_id, limit=max(1, min(limit, 500)))
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(rows)


@customers_bp.get("/<int:customer_id>/ledger")
@require_auth
def customer_ledger(customer_id: int):
    """
    Running-balance statement.

    Query params: start_date, end_date (YYYY-MM-DD). The running balance
    covers only the rows inside the range.
    """
    try:
        rows = customer_service.customer_ledger(
            customer_id,
            start_date=date_param(request.args.get("start_date"), "start_date"),
            end_date=date_param(request.args.get("end_date"), "end_date"),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(rows)


@customers_bp.get("/<int:customer_id>/account-summary")
@require_auth
def account_summary(customer_id: int):
    try:
        summary = customer_service.account_summary(customer_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(summary)


@customers_bp.post("/<int:customer_id>/check-credit")
@require_auth
def check_credit(customer_id: int):
    """Body: {"amount": "150.00"}. Answers whether a credit purchase fits the limit."""
    payload = request.get_json(silent=True) or {}
    try:
        amount = money(to_decimal(payload.get("amount"), "amount"))
        result = customer_service.check_customer_credit(customer_id, amount)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result)


@customers_bp.get("/<int:customer_id>/invoices")
@require_auth
def customer_invoices(customer_id: int):
    try:
        customer_service.get_customer(customer_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success([i.to_dict() for i in invoice_service.customer_invoices(customer_id)])


@customers_bp.post("")
@require_auth
@require_manager
def create_customer():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        customer = customer_service.create_customer(patch=patch)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(customer.to_dict(), "Customer created successfully", 201)


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_manager
def update_customer(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        customer = customer_service.update_customer(customer_id=customer_id, patch=patch)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(customer.to_dict(), "Customer updated successfully")


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_manager
def delete_customer(customer_id: int):
    try:
        customer_service.delete_customer(customer_id=customer_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(None, "Customer deleted successfully")
