# Overview: Operating expenses (EXP-YYYY-####) and expense categories.

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func

from ..cache import invalidate_reports
from ..extensions import db
from ..models import Expense, ExpenseCategory
from ..responses import paginate
from ..time_utils import today
from ..validation import NotFoundError, ValidationError, money
from .document_service import next_document_number

logger = logging.getLogger(__name__)

EXPENSE_STATUSES = {"PENDING", "APPROVED", "REJECTED", "CANCELLED"}
RECURRING_FREQUENCIES = {"DAILY", "WEEKLY", "MONTHLY", "QUARTERLY", "YEARLY"}

EXPENSE_MUTABLE_FIELDS = {
    "expense_date", "category", "description", "amount", "payment_method",
    "vendor_name", "reference_number", "notes", "is_recurring",
    "recurring_frequency", "status",
}

DEFAULT_CATEGORIES = (
    ("Rent", "Office/store rent payments"),
    ("Utilities", "Electricity, water, internet, phone bills"),
    ("Salaries", "Employee wages and benefits"),
    ("Supplies", "Office supplies, packaging materials"),
    ("Transport", "Delivery, fuel, vehicle maintenance"),
    ("Marketing", "Advertising, promotions, marketing materials"),
    ("Repairs & Maintenance", "Equipment repairs, building maintenance"),
    ("Insurance", "Business, property, liability insurance"),
    ("Taxes & Licenses", "Business taxes, permits, licenses"),
    ("Professional Services", "Accounting, legal, consulting fees"),
    ("Bank Charges", "Transaction fees, account maintenance"),
    ("Miscellaneous", "Other business expenses"),
)


class ExpenseError(ValidationError):
    pass


def seed_expense_categories() -> int:
    """Insert missing default categories. Returns the number inserted."""
    existing = {name for (name,) in db.session.query(ExpenseCategory.name).all()}
    added = 0
    for name, description in DEFAULT_CATEGORIES:
        if name not in existing:
            db.session.add(ExpenseCategory(name=name, description=description))
            added += 1
    if added:
        db.session.commit()
    return added


def list_categories() -> list[ExpenseCategory]:
    return (
        db.session.query(ExpenseCategory)
        .filter(ExpenseCategory.is_active.is_(True))
        .order_by(ExpenseCategory.name.asc())
        .all()
    )


def _check_patch(patch: dict) -> None:
    if "amount" in patch:
        if patch["amount"] is None or money(patch["amount"]) <= 0:
            raise ExpenseError("Amount must be greater than 0")
        patch["amount"] = money(patch["amount"])
    if patch.get("status"):
        patch["status"] = patch["status"].upper()
        if patch["status"] not in EXPENSE_STATUSES:
            raise ExpenseError(f"status must be one of: {', '.join(sorted(EXPENSE_STATUSES))}")
    if patch.get("recurring_frequency"):
        patch["recurring_frequency"] = patch["recurring_frequency"].upper()
        if patch["recurring_frequency"] not in RECURRING_FREQUENCIES:
            raise ExpenseError(
                f"recurring_frequency must be one of: {', '.join(sorted(RECURRING_FREQUENCIES))}"
            )


def get_expense(expense_id: int) -> Expense:
    expense = db.session.query(Expense).filter_by(id=expense_id).first()
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def create_expense(*, patch: dict, user_id: int) -> Expense:
    if patch.get("amount") is None:
        raise ExpenseError("Amount must be greater than 0")
    _check_patch(patch)

    expense = Expense(expense_number=next_document_number("EXPENSE"), created_by_id=user_id)
    for key, value in patch.items():
        if key in EXPENSE_MUTABLE_FIELDS:
            setattr(expense, key, value)
    if expense.expense_date is None:
        expense.expense_date = today()

    db.session.add(expense)
    db.session.commit()
    invalidate_reports()
    logger.info("Expense %s created by user %s: %s", expense.expense_number, user_id, expense.amount)
    return expense


def update_expense(*, expense_id: int, patch: dict) -> Expense:
    expense = get_expense(expense_id)
    _check_patch(patch)
    for key, value in patch.items():
        if key in EXPENSE_MUTABLE_FIELDS:
            setattr(expense, key, value)
    db.session.commit()
    invalidate_reports()
    logger.info("Expense %s updated: fields=%s", expense.expense_number, sorted(patch.keys()))
    return expense


def delete_expense(*, expense_id: int) -> None:
    """Hard delete; expenses have no is_active flag."""
    expense = get_expense(expense_id)
    number = expense.expense_number
    db.session.delete(expense)
    db.session.commit()
    invalidate_reports()
    logger.info("Expense %s deleted", number)


def _filtered(query, *, start_date: date | None, end_date: date | None, category: str | None = None):
    if start_date:
        query = query.filter(Expense.expense_date >= start_date)
    if end_date:
        query = query.filter(Expense.expense_date <= end_date)
    if category:
        query = query.filter(Expense.category == category)
    return query


def list_expenses(
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    category: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = _filtered(db.session.query(Expense), start_date=start_date, end_date=end_date, category=category)
    query = query.order_by(Expense.expense_date.desc(), Expense.id.desc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda e: e.to_dict())


def _counted():
    return db.session.query(Expense).filter(Expense.status.notin_(("REJECTED", "CANCELLED")))


def expense_summary(*, start_date: date | None = None, end_date: date | None = None) -> dict:
    """Totals over expenses that are not rejected or cancelled."""
    count, total, lowest, highest = (
        _filtered(_counted(), start_date=start_date, end_date=end_date)
        .with_entities(
            func.count(Expense.id),
            func.coalesce(func.sum(Expense.amount), 0),
            func.coalesce(func.min(Expense.amount), 0),
            func.coalesce(func.max(Expense.amount), 0),
        )
        .one()
    )
    total = money(total)
    return {
        "total_count": count,
        "total_amount": float(total),
        "average_amount": float(money(total / count)) if count else 0.0,
        "min_amount": float(money(lowest)),
        "max_amount": float(money(highest)),
    }


def expenses_by_category(*, start_date: date | None = None, end_date: date | None = None) -> list[dict]:
    rows = (
        _filtered(_counted(), start_date=start_date, end_date=end_date)
        .with_entities(
            Expense.category,
            func.count(Expense.id),
            func.coalesce(func.sum(Expense.amount), 0),
        )
        .group_by(Expense.category)
        .order_by(func.sum(Expense.amount).desc())
        .all()
    )
    grand_total = sum((Decimal(total) for _, _, total in rows), Decimal("0"))
    return [
        {
            "category": category,
            "count": count,
            "total_amount": float(money(total)),
            "percentage": float(round(Decimal(total) / grand_total * 100, 2)) if grand_total else 0.0,
        }
        for category, count, total in rows
    ]
