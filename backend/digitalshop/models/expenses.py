from __future__ import annotations

from ..extensions import db
from digitalshop.formatting import to_money
from digitalshop.time_utils import to_iso_date, to_utc_z, utcnow


class ExpenseCategory(db.Model):
    __tablename__ = "expense_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }


class Expense(db.Model):
    """
    Business expense (rent, utilities, salaries, ...).

    Only APPROVED expenses count towards profit/loss.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_date_category", "expense_date", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    expense_number = db.Column(db.String(32), nullable=False, unique=True)

    expense_date = db.Column(db.Date, nullable=False)
    category = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)

    payment_method = db.Column(db.String(20), nullable=False, default="CASH")
    vendor_name = db.Column(db.String(255), nullable=True)
    reference_number = db.Column(db.String(100), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_recurring = db.Column(db.Boolean, nullable=False, default=False)
    # DAILY, WEEKLY, MONTHLY, YEARLY
    recurring_frequency = db.Column(db.String(16), nullable=True)

    # PENDING, APPROVED, REJECTED, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="APPROVED")

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    created_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_number": self.expense_number,
            "expense_date": to_iso_date(self.expense_date),
            "category": self.category,
            "description": self.description,
            "amount": to_money(self.amount),
            "payment_method": self.payment_method,
            "vendor_name": self.vendor_name,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "is_recurring": self.is_recurring,
            "recurring_frequency": self.recurring_frequency,
            "status": self.status,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by.full_name if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
