# Overview: Flask API routes for customer invoices and payments.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_manager
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import invoice_service

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices():
    try:
        result = invoice_service.list_invoices(
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(result)


@invoices_bp.get("/summary")
@require_auth
def invoice_summary():
    return success(invoice_service.invoice_summary())


@invoices_bp.get("/overdue")
@require_auth
def overdue_invoices():
    return success([i.to_dict() for i in invoice_service.overdue_invoices()])


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(invoice.to_dict(include_payments=True))


@invoices_bp.get("/<int:invoice_id>/payments")
@require_auth
def invoice_payments(invoice_id: int):
    try:
        payments = invoice_service.invoice_payments(invoice_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success([p.to_dict() for p in payments])


@invoices_bp.post("")
@require_auth
@require_manager
def create_invoice():
    """
    Manual invoice.

    Request body:
        {
            "customer_id": 1,
            "subtotal": "100.00",
            "tax_amount": "0.00",
            "discount_amount": "0.00",
            "total_amount": "100.00",
            "due_date": "2025-02-15",   # optional, defaults to issue date + terms
            "notes": "..."
        }

    Returns 400 when the credit limit would be exceeded.
    """
    payload = request.get_json(silent=True) or {}
    try:
        invoice = invoice_service.create_invoice(payload, user_id=g.current_user.id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(invoice.to_dict(), "Invoice created successfully", 201)


@invoices_bp.post("/<int:invoice_id>/payments")
@require_auth
@require_manager
def record_payment(invoice_id: int):
    """Body: {"amount": "50.00", "payment_method": "CASH", "reference_number": "..."}."""
    payload = request.get_json(silent=True) or {}
    try:
        payment = invoice_service.record_payment(invoice_id, payload, user_id=g.current_user.id)
        invoice = invoice_service.get_invoice(invoice_id)
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(
        {"payment": payment.to_dict(), "invoice": invoice.to_dict()},
        "Payment recorded successfully",
        201,
    )
