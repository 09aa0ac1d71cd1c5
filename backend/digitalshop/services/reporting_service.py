# Overview: Read-only management reports over sales, stock, receivables and expenses.

"""
Reporting Service

All figures come from COMPLETED sales unless a report says otherwise
(voided / refunds). Ranges are inclusive calendar days; a missing range
means the current month. Expensive reports go through report_cache and are
dropped by invalidate_reports() whenever sales, stock, invoices or expenses
change.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import case, func

from ..cache import CacheKeys, cache_aside, report_cache
from ..extensions import db
from ..models import (
    Customer,
    Expense,
    InventoryBatch,
    Invoice,
    Product,
    Refund,
    Sale,
    SaleItem,
    StockMovement,
    User,
)
from ..time_utils import day_bounds, to_utc_z, today, utcnow
from ..validation import ValidationError, money
from . import customer_service, expense_service, sales_service
from .invoice_service import OPEN_STATUSES

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def resolve_range(start_date: date | None, end_date: date | None) -> tuple[date, date]:
    """Default to the current month; reject inverted ranges."""
    if start_date is None and end_date is None:
        end_date = today()
        start_date = end_date.replace(day=1)
    elif start_date is None:
        start_date = end_date.replace(day=1)
    elif end_date is None:
        end_date = today() if start_date <= today() else start_date
    if start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")
    return start_date, end_date


def _completed_between(start: date, end: date):
    lo, hi = day_bounds(start, end)
    return db.session.query(Sale).filter(
        Sale.status == "COMPLETED", Sale.sale_date >= lo, Sale.sale_date < hi
    )


def _sales_totals(query) -> dict:
    count, revenue, profit = query.with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount), 0),
        func.coalesce(func.sum(Sale.profit), 0),
    ).one()
    return {"sales_count": count, "revenue": float(money(revenue)), "profit": float(money(profit))}


def _receivables() -> dict:
    count, due = (
        db.session.query(func.count(Invoice.id), func.coalesce(func.sum(Invoice.amount_due), 0))
        .filter(Invoice.status.in_(OPEN_STATUSES))
        .one()
    )
    return {"unpaid_invoices": count, "total_receivables": float(money(due))}


def dashboard() -> dict:
    def _build() -> dict:
        now = today()
        inventory = (
            db.session.query(
                func.count(Product.id),
                func.count(case((Product.quantity_on_hand <= 0, 1))),
                func.count(case((
                    (Product.quantity_on_hand > 0) & (Product.quantity_on_hand <= Product.reorder_level), 1
                ))),
                func.coalesce(func.sum(Product.quantity_on_hand * Product.cost_price), 0),
            )
            .filter(Product.is_active.is_(True))
            .one()
        )
        total, out_of_stock, low_stock, value = inventory
        return {
            "today": _sales_totals(_completed_between(now, now)),
            "month": _sales_totals(_completed_between(now.replace(day=1), now)),
            "inventory": {
                "total_products": total,
                "out_of_stock": out_of_stock,
                "low_stock": low_stock,
                "inventory_value": float(money(value)),
            },
            "receivables": _receivables(),
            "generated_at": to_utc_z(utcnow()),
        }

    return cache_aside(report_cache, CacheKeys.DASHBOARD, _build)


def sales_summary(start_date: date | None = None, end_date: date | None = None) -> dict:
    start, end = resolve_range(start_date, end_date)

    def _build() -> dict:
        summary = sales_service.sales_summary(start, end)
        summary["net_sales"] = round(summary["gross_sales"] - summary["total_discounts"], 2)
        summary["start_date"] = start.isoformat()
        summary["end_date"] = end.isoformat()
        return summary

    return cache_aside(report_cache, CacheKeys.sales_summary(start.isoformat(), end.isoformat()), _build)


def _by_payment_method(query) -> list[dict]:
    rows = (
        query.with_entities(
            Sale.payment_method,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount), 0),
        )
        .group_by(Sale.payment_method)
        .order_by(func.sum(Sale.total_amount).desc())
        .all()
    )
    grand = sum((Decimal(total) for _, _, total in rows), ZERO)
    return [
        {
            "payment_method": method,
            "count": count,
            "total": float(money(total)),
            "percentage": float(round(Decimal(total) / grand * 100, 2)) if grand else 0.0,
        }
        for method, count, total in rows
    ]


def daily_sales(day: date | None = None) -> dict:
    day = day or today()
    query = _completed_between(day, day)
    totals = _sales_totals(query)
    totals["date"] = day.isoformat()
    totals["by_payment_method"] = _by_payment_method(query)
    return totals


def payment_methods(start_date: date | None = None, end_date: date | None = None) -> list[dict]:
    start, end = resolve_range(start_date, end_date)
    return _by_payment_method(_completed_between(start, end))


def sales_by_cashier(start_date: date | None = None, end_date: date | None = None) -> list[dict]:
    start, end = resolve_range(start_date, end_date)
    rows = (
        _completed_between(start, end)
        .join(User, User.id == Sale.cashier_id)
        .with_entities(
            User.id,
            User.full_name,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount), 0),
            func.coalesce(func.sum(Sale.profit), 0),
        )
        .group_by(User.id, User.full_name)
        .order_by(func.sum(Sale.total_amount).desc())
        .all()
    )
    return [
        {
            "cashier_id": user_id,
            "cashier_name": name,
            "sales_count": count,
            "revenue": float(money(revenue)),
            "profit": float(money(profit)),
            "average_sale": float(money(Decimal(revenue) / count)) if count else 0.0,
        }
        for user_id, name, count, revenue, profit in rows
    ]


def profit_loss(start_date: date | None = None, end_date: date | None = None) -> dict:
    """
    Gross revenue is pre-discount line value; COGS is the cost recorded at
    sale time. Only expenses that are not rejected or cancelled count.
    """
    start, end = resolve_range(start_date, end_date)

    def _build() -> dict:
        gross, discounts, cost = (
            _completed_between(start, end)
            .with_entities(
                func.coalesce(func.sum(Sale.subtotal), 0),
                func.coalesce(func.sum(Sale.discount_amount), 0),
                func.coalesce(func.sum(Sale.total_cost), 0),
            )
            .one()
        )
        gross, discounts, cost = money(gross), money(discounts), money(cost)
        net_revenue = gross - discounts
        gross_profit = net_revenue - cost

        expenses = expense_service.expenses_by_category(start_date=start, end_date=end)
        total_expenses = money(sum((Decimal(str(e["total_amount"])) for e in expenses), ZERO))
        net_profit = gross_profit - total_expenses

        return {
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "revenue": {
                "gross_revenue": float(gross),
                "discounts": float(discounts),
                "net_revenue": float(net_revenue),
            },
            "cost_of_goods_sold": float(cost),
            "gross_profit": float(gross_profit),
            "gross_margin": float(round(gross_profit / net_revenue * 100, 2)) if net_revenue else 0.0,
            "expenses": {"total": float(total_expenses), "by_category": expenses},
            "net_profit": float(net_profit),
            "net_margin": float(round(net_profit / net_revenue * 100, 2)) if net_revenue else 0.0,
            "accounts_receivable": _receivables()["total_receivables"],
        }

    return cache_aside(report_cache, CacheKeys.profit_loss(start.isoformat(), end.isoformat()), _build)


def customer_aging() -> dict:
    def _build() -> dict:
        as_of = today()
        open_invoices = (
            db.session.query(Invoice)
            .join(Customer, Customer.id == Invoice.customer_id)
            .filter(Invoice.status.in_(OPEN_STATUSES), Invoice.amount_due > 0)
            .order_by(Customer.name.asc(), Invoice.due_date.asc())
            .all()
        )
        by_customer: dict[int, list[Invoice]] = {}
        for inv in open_invoices:
            by_customer.setdefault(inv.customer_id, []).append(inv)

        customers = []
        totals = {"current": 0.0, "days_1_30": 0.0, "days_31_60": 0.0, "days_61_90": 0.0, "over_90": 0.0}
        for invoices in by_customer.values():
            buckets = customer_service.aging_buckets(invoices, as_of)
            for key, value in buckets.items():
                totals[key] = round(totals[key] + value, 2)
            customers.append({
                "customer_id": invoices[0].customer_id,
                "customer_name": invoices[0].customer.name,
                "invoice_count": len(invoices),
                "total_due": round(sum(buckets.values()), 2),
                "aging": buckets,
            })
        return {
            "as_of": as_of.isoformat(),
            "customers": customers,
            "totals": totals,
            "total_outstanding": round(sum(totals.values()), 2),
        }

    return cache_aside(report_cache, CacheKeys.CUSTOMER_AGING, _build)


def stock_valuation() -> dict:
    def _build() -> dict:
        products = (
            db.session.query(Product)
            .filter(Product.is_active.is_(True))
            .order_by(Product.name.asc())
            .all()
        )
        rows = []
        total_cost = total_retail = ZERO
        for p in products:
            qty = Decimal(p.quantity_on_hand or 0)
            cost_value = money(qty * Decimal(p.cost_price or 0))
            retail_value = money(qty * Decimal(p.selling_price or 0))
            total_cost += cost_value
            total_retail += retail_value
            potential = retail_value - cost_value
            rows.append({
                "product_id": p.id,
                "sku": p.sku,
                "name": p.name,
                "category": p.category,
                "quantity_on_hand": float(qty),
                "cost_price": float(money(p.cost_price)),
                "selling_price": float(money(p.selling_price)),
                "value_at_cost": float(cost_value),
                "value_at_retail": float(retail_value),
                "potential_profit": float(potential),
                "margin": float(round(potential / retail_value * 100, 2)) if retail_value else 0.0,
            })
        potential_total = total_retail - total_cost
        return {
            "products": rows,
            "totals": {
                "product_count": len(rows),
                "value_at_cost": float(total_cost),
                "value_at_retail": float(total_retail),
                "potential_profit": float(potential_total),
                "margin": float(round(potential_total / total_retail * 100, 2)) if total_retail else 0.0,
            },
        }

    return cache_aside(report_cache, CacheKeys.STOCK_VALUATION, _build)


def reorder_report() -> dict:
    """Suggested order brings stock back up to twice the reorder level."""
    def _build() -> dict:
        since = today() - timedelta(days=30)
        lo, _ = day_bounds(since, since)
        sold = (
            db.session.query(SaleItem.product_id, func.coalesce(func.sum(SaleItem.quantity), 0))
            .join(Sale, Sale.id == SaleItem.sale_id)
            .filter(Sale.status == "COMPLETED", Sale.sale_date >= lo, SaleItem.product_id.isnot(None))
            .group_by(SaleItem.product_id)
            .all()
        )
        sold_30 = {pid: Decimal(qty) for pid, qty in sold}

        products = (
            db.session.query(Product)
            .filter(Product.is_active.is_(True), Product.quantity_on_hand <= Product.reorder_level)
            .all()
        )
        rows = []
        for p in products:
            on_hand = Decimal(p.quantity_on_hand or 0)
            level = Decimal(p.reorder_level or 0)
            suggested = max(level * 2 - on_hand, ZERO)
            if on_hand <= 0:
                urgency = "OUT_OF_STOCK"
            elif on_hand <= level / 2:
                urgency = "CRITICAL"
            else:
                urgency = "LOW"
            rows.append({
                "product_id": p.id,
                "sku": p.sku,
                "name": p.name,
                "category": p.category,
                "current_stock": float(on_hand),
                "reorder_level": float(level),
                "shortfall": float(level - on_hand),
                "suggested_order_qty": float(suggested),
                "estimated_cost": float(money(suggested * Decimal(p.cost_price or 0))),
                "sold_last_30_days": float(sold_30.get(p.id, ZERO)),
                "urgency": urgency,
            })
        rows.sort(key=lambda r: (r["current_stock"] > 0, -r["shortfall"]))
        return {
            "products": rows,
            "summary": {
                "total_products": len(rows),
                "out_of_stock": sum(1 for r in rows if r["urgency"] == "OUT_OF_STOCK"),
                "critical": sum(1 for r in rows if r["urgency"] == "CRITICAL"),
                "estimated_cost": round(sum(r["estimated_cost"] for r in rows), 2),
            },
        }

    return cache_aside(report_cache, CacheKeys.STOCK_REORDER, _build)


def out_of_stock() -> list[dict]:
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.quantity_on_hand <= 0)
        .order_by(Product.name.asc())
        .all()
    )
    last_received = dict(
        db.session.query(InventoryBatch.product_id, func.max(InventoryBatch.received_date))
        .group_by(InventoryBatch.product_id)
        .all()
    )
    return [
        {
            "product_id": p.id,
            "sku": p.sku,
            "name": p.name,
            "category": p.category,
            "reorder_level": float(p.reorder_level or 0),
            "last_received_date": to_utc_z(last_received.get(p.id)),
        }
        for p in products
    ]


def inventory_movements(start_date: date | None = None, end_date: date | None = None) -> list[dict]:
    start, end = resolve_range(start_date, end_date)
    lo, hi = day_bounds(start, end)
    rows = (
        db.session.query(
            StockMovement.movement_type,
            func.count(StockMovement.id),
            func.coalesce(func.sum(StockMovement.quantity), 0),
            func.coalesce(func.sum(StockMovement.quantity * StockMovement.unit_cost), 0),
        )
        .filter(StockMovement.created_at >= lo, StockMovement.created_at < hi)
        .group_by(StockMovement.movement_type)
        .order_by(StockMovement.movement_type.asc())
        .all()
    )
    return [
        {
            "movement_type": movement_type,
            "count": count,
            "net_quantity": float(qty),
            "value": float(money(value)),
        }
        for movement_type, count, qty, value in rows
    ]


def best_selling(limit: int = 10, start_date: date | None = None, end_date: date | None = None) -> list[dict]:
    start, end = resolve_range(start_date, end_date)
    return sales_service.top_products(limit=limit, start_date=start, end_date=end)


def expense_report(start_date: date | None = None, end_date: date | None = None) -> dict:
    start, end = resolve_range(start_date, end_date)
    summary = expense_service.expense_summary(start_date=start, end_date=end)
    summary["by_category"] = expense_service.expenses_by_category(start_date=start, end_date=end)
    summary["start_date"] = start.isoformat()
    summary["end_date"] = end.isoformat()
    return summary


def income_vs_expense(start_date: date | None = None, end_date: date | None = None) -> dict:
    """Daily net revenue against daily expenses over the range."""
    start, end = resolve_range(start_date, end_date)

    income_rows = (
        _completed_between(start, end)
        .with_entities(
            func.date(Sale.sale_date),
            func.coalesce(func.sum(Sale.subtotal - Sale.discount_amount), 0),
        )
        .group_by(func.date(Sale.sale_date))
        .all()
    )
    expense_rows = (
        db.session.query(Expense.expense_date, func.coalesce(func.sum(Expense.amount), 0))
        .filter(
            Expense.expense_date >= start,
            Expense.expense_date <= end,
            Expense.status.notin_(("REJECTED", "CANCELLED")),
        )
        .group_by(Expense.expense_date)
        .all()
    )
    income = {str(d)[:10]: money(v) for d, v in income_rows}
    spent = {str(d)[:10]: money(v) for d, v in expense_rows}

    days = []
    cursor = start
    while cursor <= end:
        key = cursor.isoformat()
        i, e = income.get(key, money(0)), spent.get(key, money(0))
        days.append({"date": key, "income": float(i), "expenses": float(e), "net": float(i - e)})
        cursor += timedelta(days=1)

    total_income = sum(income.values(), money(0))
    total_expenses = sum(spent.values(), money(0))
    return {
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "days": days,
        "total_income": float(total_income),
        "total_expenses": float(total_expenses),
        "net": float(total_income - total_expenses),
    }


def voided_sales(start_date: date | None = None, end_date: date | None = None) -> dict:
    start, end = resolve_range(start_date, end_date)
    lo, hi = day_bounds(start, end)
    sales = (
        db.session.query(Sale)
        .filter(Sale.status == "VOID", Sale.voided_at >= lo, Sale.voided_at < hi)
        .order_by(Sale.voided_at.desc())
        .all()
    )
    return {
        "sales": [s.to_dict() for s in sales],
        "count": len(sales),
        "total_amount": float(sum((money(s.total_amount) for s in sales), money(0))),
    }


def refunds_report(start_date: date | None = None, end_date: date | None = None) -> dict:
    start, end = resolve_range(start_date, end_date)
    lo, hi = day_bounds(start, end)
    refunds = (
        db.session.query(Refund)
        .filter(Refund.created_at >= lo, Refund.created_at < hi)
        .order_by(Refund.created_at.desc())
        .all()
    )
    return {
        "refunds": [r.to_dict() for r in refunds],
        "count": len(refunds),
        "total_amount": float(sum((money(r.total_amount) for r in refunds), money(0))),
    }
