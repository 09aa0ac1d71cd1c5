# Overview: Customer invoices, invoice payments and derived balances.

"""
Invoice Service

Balances are DERIVED, never edited in place:
- invoice.amount_paid = sum(payment.amount)
- invoice.amount_due  = max(total_amount - amount_paid, 0)
- customer.balance    = -sum(amount_due) over open invoices

Both are recomputed after every change that touches invoices or payments.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..cache import invalidate_reports
from ..extensions import db
from ..models import Customer, Invoice, InvoicePayment
from ..responses import paginate
from ..time_utils import parse_iso_date, parse_iso_datetime, today, utcnow
from ..validation import MONEY_TOLERANCE, NotFoundError, ValidationError, money, to_decimal
from .concurrency import get_for_update, run_with_retry
from .document_service import next_document_number

logger = logging.getLogger(__name__)

INVOICE_STATUSES = ("DRAFT", "SENT", "PARTIALLY_PAID", "PAID", "OVERDUE", "CANCELLED")
OPEN_STATUSES = ("DRAFT", "SENT", "PARTIALLY_PAID", "OVERDUE")
PAYMENT_METHODS = {"CASH", "CARD", "MOBILE_MONEY", "BANK_TRANSFER", "CHEQUE", "CREDIT_NOTE"}


class InvoiceError(ValidationError):
    pass


class CreditLimitError(InvoiceError):
    pass


def _invoice_due_days() -> int:
    return current_app.config.get("INVOICE_DUE_DAYS", 30)


def recalculate_invoice(invoice: Invoice) -> Invoice:
    """Refresh amount_paid / amount_due / status from payment rows."""
    db.session.flush()
    paid = (
        db.session.query(func.coalesce(func.sum(InvoicePayment.amount), 0))
        .filter(InvoicePayment.invoice_id == invoice.id)
        .scalar()
    )
    paid = money(paid)
    total = money(invoice.total_amount)
    due = max(total - paid, Decimal("0.00"))

    invoice.amount_paid = paid
    invoice.amount_due = due

    if invoice.status == "CANCELLED":
        return invoice
    if due <= MONEY_TOLERANCE:
        invoice.status = "PAID"
    elif paid > 0:
        invoice.status = "PARTIALLY_PAID"
    elif invoice.status in ("PAID", "PARTIALLY_PAID"):
        invoice.status = "SENT"
    return invoice


def recalculate_customer_balance(customer_id: int) -> Decimal:
    """balance = -(outstanding on open invoices). Negative means the customer owes."""
    db.session.flush()
    outstanding = (
        db.session.query(func.coalesce(func.sum(Invoice.amount_due), 0))
        .filter(Invoice.customer_id == customer_id, Invoice.status.in_(OPEN_STATUSES))
        .scalar()
    )
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        return Decimal("0")
    customer.balance = -money(outstanding)
    return customer.balance


def customer_outstanding(customer_id: int) -> Decimal:
    return money(
        db.session.query(func.coalesce(func.sum(Invoice.amount_due), 0))
        .filter(Invoice.customer_id == customer_id, Invoice.status.in_(OPEN_STATUSES))
        .scalar()
    )


def check_credit(customer: Customer, amount: Decimal) -> dict:
    """A credit_limit of 0 means no limit."""
    limit = money(customer.credit_limit)
    outstanding = customer_outstanding(customer.id)
    if limit > 0:
        available = max(limit - outstanding, Decimal("0.00"))
        can_purchase = outstanding + money(amount) <= limit
    else:
        available = None
        can_purchase = True
    return {
        "can_purchase": can_purchase,
        "available_credit": float(available) if available is not None else None,
        "credit_limit": float(limit),
        "outstanding": float(outstanding),
    }


def _amount(payload: dict, key: str, default: str = "0") -> Decimal:
    value = payload.get(key)
    if value is None:
        return Decimal(default)
    result = money(to_decimal(value, key))
    if result < 0:
        raise InvoiceError(f"{key} cannot be negative")
    return result


def create_invoice(payload: dict, *, user_id: int) -> Invoice:
    """
    Manual invoice.

    Raises:
        InvoiceError: totals don't add up, non-positive total, bad dates
        CreditLimitError: would push the customer over its credit limit
        NotFoundError: customer missing or inactive
    """
    customer_id = payload.get("customer_id")
    if not customer_id or payload.get("total_amount") is None:
        raise InvoiceError("customer_id and total_amount are required")

    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer or not customer.is_active:
        raise NotFoundError("Customer not found")

    total = _amount(payload, "total_amount")
    tax = _amount(payload, "tax_amount")
    discount = _amount(payload, "discount_amount")
    subtotal = _amount(payload, "subtotal", default=str(total - tax + discount))

    if total <= 0:
        raise InvoiceError("Invoice total must be greater than 0")
    if abs((subtotal + tax - discount) - total) > MONEY_TOLERANCE:
        raise InvoiceError("Invoice total does not match subtotal + tax - discount")

    try:
        issue_date = parse_iso_date(payload.get("issue_date")) or today()
        due_date = parse_iso_date(payload.get("due_date")) or issue_date + timedelta(days=_invoice_due_days())
    except ValueError:
        raise InvoiceError("Dates must be YYYY-MM-DD")
    if due_date < issue_date:
        raise InvoiceError("Due date cannot be before issue date")

    credit = check_credit(customer, total)
    if not credit["can_purchase"]:
        raise CreditLimitError("Credit limit exceeded")

    invoice = Invoice(
        invoice_number=next_document_number("INVOICE"),
        customer_id=customer.id,
        sale_id=payload.get("sale_id"),
        issue_date=issue_date,
        due_date=due_date,
        subtotal=subtotal,
        tax_amount=tax,
        discount_amount=discount,
        total_amount=total,
        amount_paid=Decimal("0.00"),
        amount_due=total,
        status="SENT",
        notes=payload.get("notes"),
        created_by_id=user_id,
    )
    db.session.add(invoice)
    recalculate_customer_balance(customer.id)
    db.session.commit()
    invalidate_reports()
    logger.info("Invoice %s created for customer %s: %s", invoice.invoice_number, customer.id, total)
    return invoice


def create_invoice_for_sale(sale, *, amount_applied: Decimal, user_id: int) -> Invoice:
    """
    Invoice the unpaid part of a credit/partial sale. Caller commits.

    amount_applied (already capped at the sale total) is recorded as a payment.
    """
    issue_date = sale.sale_date.date() if sale.sale_date else today()
    invoice = Invoice(
        invoice_number=next_document_number("INVOICE"),
        customer_id=sale.customer_id,
        sale_id=sale.id,
        issue_date=issue_date,
        due_date=issue_date + timedelta(days=_invoice_due_days()),
        subtotal=sale.subtotal,
        tax_amount=sale.tax_amount,
        discount_amount=sale.discount_amount,
        total_amount=sale.total_amount,
        amount_paid=Decimal("0.00"),
        amount_due=sale.total_amount,
        status="PARTIALLY_PAID" if amount_applied > 0 else "DRAFT",
        notes=f"Generated from sale {sale.sale_number}",
        created_by_id=user_id,
    )
    db.session.add(invoice)
    db.session.flush()

    if amount_applied > 0:
        db.session.add(InvoicePayment(
            receipt_number=next_document_number("RECEIPT"),
            invoice_id=invoice.id,
            payment_date=sale.sale_date or utcnow(),
            payment_method=sale.payment_method if sale.payment_method != "CREDIT" else "CASH",
            amount=amount_applied,
            notes=f"Payment at sale {sale.sale_number}",
            processed_by_id=user_id,
        ))

    recalculate_invoice(invoice)
    recalculate_customer_balance(sale.customer_id)
    return invoice


def apply_credit_note(invoice: Invoice, amount: Decimal, *, reference: str, user_id: int) -> Decimal:
    """
    Credit an open invoice (refunds). Recorded as a CREDIT_NOTE payment so the
    derived balance stays consistent. Returns the amount actually credited.
    """
    if invoice.status in ("PAID", "CANCELLED"):
        return Decimal("0.00")
    credit = min(money(amount), money(invoice.amount_due))
    if credit <= 0:
        return Decimal("0.00")
    db.session.add(InvoicePayment(
        receipt_number=next_document_number("RECEIPT"),
        invoice_id=invoice.id,
        payment_method="CREDIT_NOTE",
        amount=credit,
        reference_number=reference,
        notes=f"Credit from refund {reference}",
        processed_by_id=user_id,
    ))
    recalculate_invoice(invoice)
    recalculate_customer_balance(invoice.customer_id)
    return credit


def cancel_invoices_for_sale(sale_id: int) -> int:
    """Cancel every non-cancelled invoice linked to a sale. Caller commits."""
    invoices = (
        db.session.query(Invoice)
        .filter(Invoice.sale_id == sale_id, Invoice.status != "CANCELLED")
        .all()
    )
    customers = set()
    for invoice in invoices:
        invoice.status = "CANCELLED"
        customers.add(invoice.customer_id)
    for customer_id in customers:
        recalculate_customer_balance(customer_id)
    return len(invoices)


def record_payment(invoice_id: int, payload: dict, *, user_id: int) -> InvoicePayment:
    """
    Record a payment and refresh invoice + customer balances.

    Raises:
        InvoiceError: bad amount, overpayment, paid/cancelled invoice
        NotFoundError: invoice missing
    """
    if payload.get("amount") is None:
        raise InvoiceError("amount is required")
    amount = money(to_decimal(payload["amount"], "amount"))
    if amount <= 0:
        raise InvoiceError("Payment amount must be greater than 0")

    method = (payload.get("payment_method") or "CASH").upper()
    if method not in PAYMENT_METHODS:
        raise InvoiceError(f"Invalid payment method: {method}")

    payment_date = utcnow()
    if payload.get("payment_date"):
        try:
            payment_date = parse_iso_datetime(payload["payment_date"])
        except ValueError:
            raise InvoiceError("payment_date must be an ISO-8601 datetime")

    def _op() -> InvoicePayment:
        invoice = get_for_update(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError("Invoice not found")
        if invoice.status == "PAID":
            raise InvoiceError("Invoice is already paid")
        if invoice.status == "CANCELLED":
            raise InvoiceError("Cannot record payment on a cancelled invoice")
        if amount > money(invoice.amount_due) + MONEY_TOLERANCE:
            raise InvoiceError(
                f"Payment amount ({amount}) exceeds amount due ({money(invoice.amount_due)})"
            )

        payment = InvoicePayment(
            receipt_number=next_document_number("RECEIPT"),
            invoice_id=invoice.id,
            payment_date=payment_date,
            payment_method=method,
            amount=amount,
            reference_number=payload.get("reference_number"),
            notes=payload.get("notes"),
            processed_by_id=user_id,
        )
        db.session.add(payment)
        recalculate_invoice(invoice)
        recalculate_customer_balance(invoice.customer_id)
        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    invalidate_reports()
    logger.info(
        "Payment %s recorded on invoice %s: %s", payment.receipt_number, invoice_id, amount
    )
    return payment


# -- Reads --

def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(id=invoice_id).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def list_invoices(
    *,
    status: str | None = None,
    customer_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Invoice)
    if status:
        status = status.upper()
        if status not in INVOICE_STATUSES:
            raise InvoiceError(f"Invalid status: {status}")
        query = query.filter(Invoice.status == status)
    if customer_id:
        query = query.filter(Invoice.customer_id == customer_id)
    query = query.order_by(Invoice.issue_date.desc(), Invoice.id.desc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda i: i.to_dict())


def customer_invoices(customer_id: int) -> list[Invoice]:
    return (
        db.session.query(Invoice)
        .filter(Invoice.customer_id == customer_id)
        .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        .all()
    )


def invoice_payments(invoice_id: int) -> list[InvoicePayment]:
    get_invoice(invoice_id)
    return (
        db.session.query(InvoicePayment)
        .filter(InvoicePayment.invoice_id == invoice_id)
        .order_by(InvoicePayment.payment_date.asc(), InvoicePayment.id.asc())
        .all()
    )


def overdue_invoices(as_of: date | None = None) -> list[Invoice]:
    as_of = as_of or today()
    return (
        db.session.query(Invoice)
        .filter(
            Invoice.status.in_(OPEN_STATUSES),
            Invoice.due_date < as_of,
            Invoice.amount_due > 0,
        )
        .order_by(Invoice.due_date.asc())
        .all()
    )


def invoice_summary() -> dict:
    by_status = {status: 0 for status in INVOICE_STATUSES}
    by_status.update(dict(
        db.session.query(Invoice.status, func.count(Invoice.id)).group_by(Invoice.status).all()
    ))
    totals = (
        db.session.query(
            func.coalesce(func.sum(Invoice.total_amount), 0),
            func.coalesce(func.sum(Invoice.amount_paid), 0),
        )
        .filter(Invoice.status != "CANCELLED")
        .one()
    )
    outstanding = (
        db.session.query(func.coalesce(func.sum(Invoice.amount_due), 0))
        .filter(Invoice.status.in_(OPEN_STATUSES))
        .scalar()
    )
    return {
        "total_invoices": sum(by_status.values()),
        "by_status": by_status,
        "total_invoiced": float(money(totals[0])),
        "total_paid": float(money(totals[1])),
        "total_outstanding": float(money(outstanding)),
        "overdue_count": len(overdue_invoices()),
    }
