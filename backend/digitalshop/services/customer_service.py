# Overview: Customer master data, statements and credit checks.

"""
Customer Service

Name (case-insensitive), phone and email are unique among ACTIVE customers.
balance is never written here; invoice_service derives it from open invoices.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import case, func, literal, or_, union_all

from ..extensions import db
from ..models import Customer, Invoice, InvoicePayment, Sale
from ..responses import paginate
from ..time_utils import to_utc_z, today
from ..validation import ConflictError, NotFoundError, ValidationError, money
from .invoice_service import OPEN_STATUSES, check_credit

logger = logging.getLogger(__name__)

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "phone", "address", "credit_limit", "is_active", "notes"}


def _active_customers(exclude_id: int | None = None):
    query = db.session.query(Customer).filter(Customer.is_active.is_(True))
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query


def check_customer_uniqueness(patch: dict, *, exclude_id: int | None = None) -> None:
    name = patch.get("name")
    if name:
        clash = (
            _active_customers(exclude_id)
            .filter(func.lower(Customer.name) == name.strip().lower())
            .first()
        )
        if clash:
            raise ConflictError(
                f'A customer with name "{name}" already exists. Please use a different name.'
            )

    phone = patch.get("phone")
    if phone:
        clash = _active_customers(exclude_id).filter(Customer.phone == phone).first()
        if clash:
            raise ConflictError(f'A customer with phone number "{phone}" already exists: {clash.name}')

    email = patch.get("email")
    if email:
        clash = (
            _active_customers(exclude_id)
            .filter(func.lower(Customer.email) == email.strip().lower())
            .first()
        )
        if clash:
            raise ConflictError(f'A customer with email "{email}" already exists: {clash.name}')


def _check_credit_limit(patch: dict) -> None:
    limit = patch.get("credit_limit")
    if limit is not None and Decimal(limit) < 0:
        raise ValidationError("Credit limit cannot be negative")


def get_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def list_customers(*, page: int | None = None, per_page: int | None = None,
                   include_inactive: bool = False) -> dict:
    query = db.session.query(Customer)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    query = query.order_by(Customer.name.asc(), Customer.id.asc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda c: c.to_dict())


def search_customers(term: str, limit: int = 20) -> list[Customer]:
    term = (term or "").strip()
    if not term:
        return []
    like = f"%{term.lower()}%"
    return (
        _active_customers()
        .filter(
            or_(
                func.lower(Customer.name).like(like),
                func.lower(Customer.email).like(like),
                Customer.phone.like(f"%{term}%"),
            )
        )
        .order_by(Customer.name.asc())
        .limit(limit)
        .all()
    )


def customers_with_balance() -> list[Customer]:
    """Active customers who owe money (negative balance), largest debt first."""
    return (
        _active_customers()
        .filter(Customer.balance < 0)
        .order_by(Customer.balance.asc(), Customer.name.asc())
        .all()
    )


def create_customer(*, patch: dict) -> Customer:
    _check_credit_limit(patch)
    check_customer_uniqueness(patch)

    customer = Customer()
    for key, value in patch.items():
        if key in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, key, value)
    db.session.add(customer)
    db.session.commit()
    logger.info("Customer created: id=%s name=%s", customer.id, customer.name)
    return customer


def update_customer(*, customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    _check_credit_limit(patch)
    if patch.get("is_active", customer.is_active):
        current = {"name": customer.name, "phone": customer.phone, "email": customer.email}
        check_customer_uniqueness({**current, **patch}, exclude_id=customer.id)

    for key, value in patch.items():
        if key in CUSTOMER_MUTABLE_FIELDS:
            setattr(customer, key, value)
    db.session.commit()
    logger.info("Customer updated: id=%s fields=%s", customer.id, sorted(patch.keys()))
    return customer


def delete_customer(*, customer_id: int) -> Customer:
    customer = get_customer(customer_id)
    customer.is_active = False
    db.session.commit()
    logger.info("Customer deactivated: id=%s", customer.id)
    return customer


def _iso(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.isoformat()


def customer_transactions(customer_id: int, limit: int = 50) -> list[dict]:
    """Recent completed sales (debits) and invoice payments (credits), newest first."""
    get_customer(customer_id)

    sales = (
        db.session.query(Sale)
        .filter(Sale.customer_id == customer_id, Sale.status == "COMPLETED")
        .order_by(Sale.sale_date.desc())
        .limit(limit)
        .all()
    )
    payments = (
        db.session.query(InvoicePayment, Invoice.invoice_number)
        .join(Invoice, Invoice.id == InvoicePayment.invoice_id)
        .filter(Invoice.customer_id == customer_id)
        .order_by(InvoicePayment.payment_date.desc())
        .limit(limit)
        .all()
    )

    rows = [
        {
            "type": "SALE",
            "reference_number": s.sale_number,
            "transaction_date": to_utc_z(s.sale_date),
            "amount": float(money(s.total_amount)),
            "payment_method": s.payment_method,
            "description": s.notes,
            "_sort": (s.sale_date, s.created_at),
        }
        for s in sales
    ]
    rows += [
        {
            "type": "PAYMENT",
            "reference_number": p.receipt_number,
            "transaction_date": to_utc_z(p.payment_date),
            "amount": -float(money(p.amount)),
            "payment_method": p.payment_method,
            "description": p.notes or f"Payment for {invoice_number}",
            "_sort": (p.payment_date, p.created_at),
        }
        for p, invoice_number in payments
    ]
    rows.sort(key=lambda r: r["_sort"], reverse=True)
    for row in rows:
        del row["_sort"]
    return rows[:limit]


def customer_ledger(customer_id: int, *, start_date: date | None = None,
                    end_date: date | None = None) -> list[dict]:
    """
    Account statement: invoices are debits, payments are credits.

    running_balance = SUM(debit - credit) OVER (ORDER BY transaction_date,
    created_at ROWS UNBOUNDED PRECEDING). The date range filters the same
    SELECT the window runs over, so a filtered statement starts from zero.
    """
    get_customer(customer_id)

    invoices = (
        db.session.query(
            literal("INVOICE").label("type"),
            Invoice.invoice_number.label("reference_number"),
            func.date(Invoice.issue_date).label("transaction_date"),
            Invoice.total_amount.label("debit"),
            literal(0).label("credit"),
            (literal("Invoice from ") + func.coalesce(Sale.sale_number, "direct")).label("description"),
            Invoice.created_at.label("created_at"),
        )
        .outerjoin(Sale, Sale.id == Invoice.sale_id)
        .filter(Invoice.customer_id == customer_id, Invoice.status != "CANCELLED")
    )
    payments = (
        db.session.query(
            literal("PAYMENT").label("type"),
            InvoicePayment.receipt_number.label("reference_number"),
            func.date(InvoicePayment.payment_date).label("transaction_date"),
            literal(0).label("debit"),
            InvoicePayment.amount.label("credit"),
            (InvoicePayment.payment_method + " payment - " + Invoice.invoice_number).label("description"),
            InvoicePayment.created_at.label("created_at"),
        )
        .join(Invoice, Invoice.id == InvoicePayment.invoice_id)
        .filter(Invoice.customer_id == customer_id)
    )

    txns = union_all(invoices.statement, payments.statement).subquery("transactions")
    query = db.session.query(
        txns.c.type,
        txns.c.reference_number,
        txns.c.transaction_date,
        txns.c.debit,
        txns.c.credit,
        txns.c.description,
        txns.c.created_at,
        func.sum(txns.c.debit - txns.c.credit)
        .over(order_by=(txns.c.transaction_date, txns.c.created_at), rows=(None, 0))
        .label("running_balance"),
    )
    if start_date:
        query = query.filter(txns.c.transaction_date >= start_date.isoformat())
    if end_date:
        query = query.filter(txns.c.transaction_date <= end_date.isoformat())
    query = query.order_by(txns.c.transaction_date.asc(), txns.c.created_at.asc())

    return [
        {
            "type": row.type,
            "reference_number": row.reference_number,
            "transaction_date": _iso(row.transaction_date),
            "debit": float(money(row.debit or 0)),
            "credit": float(money(row.credit or 0)),
            "description": row.description,
            "running_balance": float(money(row.running_balance or 0)),
            "created_at": to_utc_z(row.created_at) if not isinstance(row.created_at, str) else row.created_at,
        }
        for row in query.all()
    ]


def aging_buckets(invoices, as_of: date | None = None) -> dict:
    """Sum amount_due of open invoices by days past due_date."""
    as_of = as_of or today()
    buckets = {
        "current": Decimal("0.00"),
        "days_1_30": Decimal("0.00"),
        "days_31_60": Decimal("0.00"),
        "days_61_90": Decimal("0.00"),
        "over_90": Decimal("0.00"),
    }
    for inv in invoices:
        due = money(inv.amount_due)
        days = (as_of - inv.due_date).days
        if days <= 0:
            buckets["current"] += due
        elif days <= 30:
            buckets["days_1_30"] += due
        elif days <= 60:
            buckets["days_31_60"] += due
        elif days <= 90:
            buckets["days_61_90"] += due
        else:
            buckets["over_90"] += due
    return {k: float(v) for k, v in buckets.items()}


def account_summary(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    as_of = today()

    totals = (
        db.session.query(
            func.coalesce(func.sum(case((Invoice.status != "CANCELLED", Invoice.total_amount), else_=0)), 0),
            func.coalesce(func.sum(case((Invoice.status.in_(OPEN_STATUSES), Invoice.amount_due), else_=0)), 0),
            func.count(case((Invoice.status == "PAID", 1))),
            func.count(case((Invoice.status.in_(("DRAFT", "SENT", "PARTIALLY_PAID")), 1))),
            func.count(case((
                or_(
                    Invoice.status == "OVERDUE",
                    Invoice.status.in_(("DRAFT", "SENT", "PARTIALLY_PAID")) & (Invoice.due_date < as_of),
                ),
                1,
            ))),
        )
        .filter(Invoice.customer_id == customer_id)
        .one()
    )
    total_invoiced, outstanding, paid_count, open_count, overdue_count = totals

    total_paid = (
        db.session.query(func.coalesce(func.sum(InvoicePayment.amount), 0))
        .join(Invoice, Invoice.id == InvoicePayment.invoice_id)
        .filter(Invoice.customer_id == customer_id, Invoice.status != "CANCELLED")
        .scalar()
    )

    open_invoices = (
        db.session.query(Invoice)
        .filter(Invoice.customer_id == customer_id, Invoice.status.in_(OPEN_STATUSES))
        .all()
    )

    last_sale = db.session.query(func.max(Sale.sale_date)).filter(Sale.customer_id == customer_id).scalar()
    last_payment = (
        db.session.query(func.max(InvoicePayment.payment_date))
        .join(Invoice, Invoice.id == InvoicePayment.invoice_id)
        .filter(Invoice.customer_id == customer_id)
        .scalar()
    )

    return {
        "customer": customer.to_dict(),
        "total_invoiced": float(money(total_invoiced)),
        "total_paid": float(money(total_paid)),
        "total_outstanding": float(money(outstanding)),
        "paid_invoice_count": paid_count,
        "open_invoice_count": open_count,
        "overdue_invoice_count": overdue_count,
        "aging": aging_buckets(open_invoices, as_of),
        "last_sale_date": to_utc_z(last_sale),
        "last_payment_date": to_utc_z(last_payment),
    }


def check_customer_credit(customer_id: int, amount: Decimal) -> dict:
    customer = get_customer(customer_id)
    if amount < 0:
        raise ValidationError("Amount cannot be negative")
    return check_credit(customer, amount)
