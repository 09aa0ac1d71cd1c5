# Overview: Flask API routes for reports; parses input and returns JSON responses.

"""
Report routes.

Date ranges come in as start_date / end_date (YYYY-MM-DD) and default to the
current month. Access is by report permission; the default role mapping
grants these to MANAGER and ADMIN only.
"""
from flask import Blueprint, request

from ..decorators import require_auth, require_permission
from ..errors import DOMAIN_ERRORS, error_from
from ..responses import success
from ..services import reporting_service
from ..validation import date_param

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _ranged(report, **kwargs):
    try:
        data = report(
            start_date=date_param(request.args.get("start_date"), "start_date"),
            end_date=date_param(request.args.get("end_date"), "end_date"),
            **kwargs,
        )
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(data)


@reports_bp.get("/dashboard")
@require_auth
@require_permission("reports.sales")
def dashboard():
    return success(reporting_service.dashboard())


@reports_bp.get("/sales-summary")
@require_auth
@require_permission("reports.sales")
def sales_summary():
    return _ranged(reporting_service.sales_summary)


@reports_bp.get("/daily-sales")
@require_auth
@require_permission("reports.sales")
def daily_sales():
    try:
        day = date_param(request.args.get("date"), "date")
    except DOMAIN_ERRORS as e:
        return error_from(e)
    return success(reporting_service.daily_sales(day))


@reports_bp.get("/sales-by-cashier")
@require_auth
@require_permission("reports.sales")
def sales_by_cashier():
    return _ranged(reporting_service.sales_by_cashier)


@reports_bp.get("/payment-methods")
@require_auth
@require_permission("reports.sales")
def payment_methods():
    return _ranged(reporting_service.payment_methods)


@reports_bp.get("/best-selling")
@require_auth
@require_permission("reports.sales")
def best_selling():
    limit = request.args.get("limit", 10, type=int)
    return _ranged(reporting_service.best_selling, limit=max(1, min(limit, 100)))


@reports_bp.get("/voided")
@require_auth
@require_permission("reports.sales")
def voided_sales():
    return _ranged(reporting_service.voided_sales)


@reports_bp.get("/refunds")
@require_auth
@require_permission("reports.sales")
def refunds():
    return _ranged(reporting_service.refunds_report)


@reports_bp.get("/profit-loss")
@require_auth
@require_permission("reports.financial")
def profit_loss():
    return _ranged(reporting_service.profit_loss)


@reports_bp.get("/income-vs-expense")
@require_auth
@require_permission("reports.financial")
def income_vs_expense():
    return _ranged(reporting_service.income_vs_expense)


@reports_bp.get("/customer-aging")
@require_auth
@require_permission("reports.customers")
def customer_aging():
    return success(reporting_service.customer_aging())


@reports_bp.get("/stock-valuation")
@require_auth
@require_permission("reports.inventory")
def stock_valuation():
    return success(reporting_service.stock_valuation())


@reports_bp.get("/reorder")
@require_auth
@require_permission("reports.inventory")
def reorder():
    return success(reporting_service.reorder_report())


@reports_bp.get("/out-of-stock")
@require_auth
@require_permission("reports.inventory")
def out_of_stock():
    return success(reporting_service.out_of_stock())


@reports_bp.get("/inventory-movements")
@require_auth
@require_permission("reports.inventory")
def inventory_movements():
    return _ranged(reporting_service.inventory_movements)


@reports_bp.get("/expense-summary")
@require_auth
@require_permission("reports.expenses")
def expense_summary():
    return _ranged(reporting_service.expense_report)
