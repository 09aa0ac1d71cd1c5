from __future__ import annotations

from ..extensions import db
from digitalshop.formatting import to_money
from digitalshop.time_utils import to_iso_date, to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer master data.

    balance is DERIVED from open invoices: balance = -sum(amount_due), so a
    customer who owes money has a negative balance. See
    invoice_service.recalculate_customer_balance.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True, index=True)
    phone = db.Column(db.String(50), nullable=True, index=True)
    address = db.Column(db.Text, nullable=True)

    balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    credit_limit = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "balance": to_money(self.balance),
            "credit_limit": to_money(self.credit_limit),
            "is_active": self.is_active,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Invoice(db.Model):
    """
    Customer invoice (accounts receivable).

    LIFECYCLE:
    DRAFT/SENT -> PARTIALLY_PAID -> PAID
    any open status -> OVERDUE (past due_date) | CANCELLED

    amount_paid / amount_due / status are always recomputed from the payment
    rows, never adjusted incrementally (except by refunds, which credit the
    invoice directly).
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False)
    amount_paid = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    amount_due = db.Column(db.Numeric(15, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="SENT", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("invoices", lazy=True))

    def to_dict(self, include_payments: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "sale_id": self.sale_id,
            "sale_number": self.sale.sale_number if self.sale else None,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "subtotal": to_money(self.subtotal),
            "tax_amount": to_money(self.tax_amount),
            "discount_amount": to_money(self.discount_amount),
            "total_amount": to_money(self.total_amount),
            "amount_paid": to_money(self.amount_paid),
            "amount_due": to_money(self.amount_due),
            "status": self.status,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_payments:
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class InvoicePayment(db.Model):
    """Payment received against an invoice. Identified by receipt number."""
    __tablename__ = "invoice_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(32), nullable=False, unique=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    payment_method = db.Column(db.String(20), nullable=False, default="CASH")
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    reference_number = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    processed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    invoice = db.relationship(
        "Invoice",
        backref=db.backref("payments", lazy=True, order_by="InvoicePayment.payment_date"),
    )
    processed_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice.invoice_number if self.invoice else None,
            "payment_date": to_utc_z(self.payment_date),
            "payment_method": self.payment_method,
            "amount": to_money(self.amount),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "processed_by_id": self.processed_by_id,
            "processed_by_name": self.processed_by.full_name if self.processed_by else None,
            "created_at": to_utc_z(self.created_at),
        }
