# Overview: POS sales: checkout, void and refund, plus sales reads.

"""
Sales Service

CHECKOUT runs in ONE transaction:
1. validate items, customer and payment
2. check stock for every product (aggregated per product) before mutating anything
3. allocate SALE-YYYY-#### and deduct stock FEFO (one SaleItem + one SALE
   movement per batch allocation)
4. for customer sales with an unpaid balance, raise an invoice and record
   whatever was paid against it

MONEY RULES:
- line tax = (line subtotal - line discount) * product.tax_rate, taxable products only
- total = subtotal - (line discounts + cart discount) + tax
- profit = (subtotal - discounts) - cost (tax is never profit)
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from decimal import Decimal

from sqlalchemy import func

from ..cache import invalidate_products, invalidate_reports
from ..extensions import db
from ..formatting import format_qty
from ..models import Customer, Invoice, Product, Refund, RefundItem, Sale, SaleItem
from ..responses import paginate
from ..time_utils import day_bounds, parse_iso_datetime, utcnow
from ..validation import MONEY_TOLERANCE, NotFoundError, ValidationError, money, quantity, to_decimal
from .concurrency import get_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import deduct_fefo, record_movement, restore_stock, unit_cost_for
from .invoice_service import apply_credit_note, cancel_invoices_for_sale, create_invoice_for_sale

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

PAYMENT_METHODS = {"CASH", "CARD", "MOBILE_MONEY", "BANK_TRANSFER", "CREDIT"}
ITEM_TYPES = {"PRODUCT", "SERVICE", "CUSTOM"}
SALE_STATUSES = {"COMPLETED", "VOID", "REFUNDED"}


class SaleError(ValidationError):
    """Raised when sale operations fail validation."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _split(amount: Decimal, parts: list[Decimal], total: Decimal) -> list[Decimal]:
    """Split amount across parts proportionally; the last part takes the rounding."""
    if len(parts) == 1 or total == 0:
        return [amount] + [ZERO] * (len(parts) - 1)
    shares = [money(amount * p / total) for p in parts[:-1]]
    shares.append(money(amount - sum(shares, ZERO)))
    return shares


def _parse_lines(items: list) -> list[dict]:
    lines = []
    for n, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise SaleError(f"Item {n} is invalid")
        item_type = (raw.get("item_type") or "PRODUCT").upper()
        if item_type not in ITEM_TYPES:
            raise SaleError(f"Item {n} has invalid item_type: {item_type}")
        if raw.get("quantity") is None:
            raise SaleError(f"Item {n} requires quantity")

        qty = quantity(to_decimal(raw["quantity"], "quantity"))
        if qty <= 0:
            raise SaleError(f"Item {n} quantity must be greater than 0")

        discount = money(to_decimal(raw.get("discount_amount") or 0, "discount_amount"))
        if discount < 0:
            raise SaleError(f"Item {n} discount cannot be negative")

        line = {"n": n, "item_type": item_type, "quantity": qty, "discount": discount}

        if item_type == "PRODUCT":
            if not raw.get("product_id"):
                raise SaleError(f"Item {n}: product_id is required for product items")
            product = db.session.query(Product).filter_by(id=raw["product_id"]).first()
            if not product or not product.is_active:
                raise NotFoundError(f"Product {raw['product_id']} not found")
            price = raw.get("unit_price")
            line.update(
                product=product,
                name=product.name,
                unit_price=money(to_decimal(price, "unit_price")) if price is not None else money(product.selling_price),
                tax_rate=Decimal(product.tax_rate or 0) if product.is_taxable else Decimal("0"),
            )
        else:
            name = (raw.get("description") or raw.get("product_name") or "").strip()
            if not name:
                raise SaleError(f"Item {n}: custom items require a description")
            if raw.get("unit_price") is None:
                raise SaleError(f"Item {n}: custom items require unit_price")
            line.update(
                product=None,
                name=name,
                unit_price=money(to_decimal(raw["unit_price"], "unit_price")),
                unit_cost=money(to_decimal(raw.get("unit_cost") or 0, "unit_cost")),
                tax_rate=to_decimal(raw.get("tax_rate") or 0, "tax_rate"),
            )

        if line["unit_price"] < 0:
            raise SaleError(f"Item {n} unit price cannot be negative")
        line["subtotal"] = money(qty * line["unit_price"])
        if discount > line["subtotal"]:
            raise SaleError(f"Item {n} discount exceeds line total")
        line["tax"] = money((line["subtotal"] - discount) * line["tax_rate"])
        lines.append(line)
    return lines


def _check_stock(lines: list[dict]) -> None:
    """All-or-nothing availability check, aggregated per product."""
    requested: "OrderedDict[int, Decimal]" = OrderedDict()
    products = {}
    for line in lines:
        product = line["product"]
        if product is None:
            continue
        requested[product.id] = requested.get(product.id, Decimal("0")) + line["quantity"]
        products[product.id] = product

    for product_id, qty in requested.items():
        product = products[product_id]
        available = Decimal(product.quantity_on_hand or 0)
        if available < qty:
            raise SaleError(
                f"Insufficient stock for {product.name}. "
                f"Available: {format_qty(available)}, requested: {format_qty(qty)}",
                {"product_id": product_id, "available": float(available), "requested": float(qty)},
            )


def create_sale(payload: dict, *, user_id: int) -> Sale:
    """
    Complete a POS sale.

    Raises:
        SaleError: validation, stock or payment failure (nothing is written)
        NotFoundError: unknown product or customer
    """
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise SaleError("At least one item is required")

    payment_method = (payload.get("payment_method") or "CASH").upper()
    if payment_method not in PAYMENT_METHODS:
        raise SaleError(f"Invalid payment method: {payment_method}")

    customer = None
    if payload.get("customer_id"):
        customer = db.session.query(Customer).filter_by(id=payload["customer_id"]).first()
        if not customer or not customer.is_active:
            raise NotFoundError("Customer not found")

    sale_date = utcnow()
    if payload.get("sale_date"):
        try:
            sale_date = parse_iso_datetime(payload["sale_date"])
        except ValueError:
            raise SaleError("sale_date must be an ISO-8601 datetime")

    def _op() -> Sale:
        lines = _parse_lines(items)
        _check_stock(lines)

        subtotal = money(sum((l["subtotal"] for l in lines), ZERO))
        line_discounts = money(sum((l["discount"] for l in lines), ZERO))
        tax = money(sum((l["tax"] for l in lines), ZERO))
        cart_discount = money(to_decimal(payload.get("discount_amount") or 0, "discount_amount"))
        if cart_discount < 0:
            raise SaleError("discount_amount cannot be negative")
        if line_discounts + cart_discount > subtotal:
            raise SaleError("Discount cannot exceed the sale subtotal")

        discounts = line_discounts + cart_discount
        total = money(subtotal - discounts + tax)

        if payload.get("amount_paid") is not None:
            paid = money(to_decimal(payload["amount_paid"], "amount_paid"))
        else:
            paid = ZERO if payment_method == "CREDIT" else total
        if paid < 0:
            raise SaleError("amount_paid cannot be negative")
        if customer is None and paid + MONEY_TOLERANCE < total:
            raise SaleError("Walk-in customers must pay in full. Select a customer for partial payment.")

        sale = Sale(
            sale_number=next_document_number("SALE"),
            customer_id=customer.id if customer else None,
            sale_date=sale_date,
            subtotal=subtotal,
            tax_amount=tax,
            discount_amount=discounts,
            total_amount=total,
            payment_method=payment_method,
            amount_paid=paid,
            change_amount=max(paid - total, ZERO),
            status="COMPLETED",
            notes=payload.get("notes"),
            cashier_id=user_id,
        )
        db.session.add(sale)
        db.session.flush()

        # Cart discount is spread over lines so per-line profit adds up.
        cart_shares = _split(cart_discount, [l["subtotal"] - l["discount"] for l in lines], subtotal - line_discounts)

        total_cost = ZERO
        for line, cart_share in zip(lines, cart_shares):
            product = line["product"]
            line_discount = line["discount"] + cart_share
            if product is None:
                allocations = [(None, line["quantity"], line["unit_cost"])]
            else:
                product = get_for_update(Product, product.id)
                allocations = [
                    (batch, qty, money(batch.cost_price) if batch is not None else unit_cost_for(product))
                    for batch, qty in deduct_fefo(product, line["quantity"])
                ]

            qtys = [a[1] for a in allocations]
            price_parts = _split(line["subtotal"], qtys, line["quantity"])
            discount_parts = _split(line_discount, qtys, line["quantity"])
            tax_parts = _split(line["tax"], qtys, line["quantity"])

            for (batch, qty, unit_cost), part_subtotal, part_discount, part_tax in zip(
                allocations, price_parts, discount_parts, tax_parts
            ):
                cost = money(qty * unit_cost)
                total_cost += cost
                db.session.add(SaleItem(
                    sale_id=sale.id,
                    item_type=line["item_type"],
                    product_id=product.id if product else None,
                    product_name=line["name"],
                    batch_id=batch.id if batch is not None else None,
                    quantity=qty,
                    unit_price=line["unit_price"],
                    unit_cost=unit_cost,
                    discount_amount=part_discount,
                    tax_amount=part_tax,
                    total_price=money(part_subtotal - part_discount + part_tax),
                    profit=money(part_subtotal - part_discount - cost),
                ))
                if product is not None:
                    record_movement(
                        product_id=product.id,
                        movement_type="SALE",
                        qty=-qty,
                        batch_id=batch.id if batch is not None else None,
                        unit_cost=unit_cost,
                        reference_type="SALE",
                        reference_id=sale.id,
                        notes=f"Sale {sale.sale_number}",
                        user_id=user_id,
                    )

        net = subtotal - discounts
        sale.total_cost = money(total_cost)
        sale.profit = money(net - total_cost)
        sale.profit_margin = (sale.profit / net * 100).quantize(Decimal("0.01")) if net > 0 else Decimal("0")

        unpaid = total - min(paid, total)
        if customer is not None and unpaid > MONEY_TOLERANCE:
            create_invoice_for_sale(sale, amount_applied=min(paid, total), user_id=user_id)

        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    invalidate_products()
    invalidate_reports()
    logger.info(
        "Sale %s completed by user %s: total=%s items=%d",
        sale.sale_number, user_id, sale.total_amount, len(sale.items),
    )
    return sale


def _restore_item_stock(item: SaleItem, qty: Decimal, *, reference_type: str, reference_id: int,
                        notes: str, user_id: int) -> None:
    if item.product_id is None:
        return
    product = get_for_update(Product, item.product_id)
    restore_stock(product, item.batch, qty)
    record_movement(
        product_id=product.id,
        movement_type="RETURN",
        qty=qty,
        batch_id=item.batch_id,
        unit_cost=item.unit_cost,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        user_id=user_id,
    )


def void_sale(sale_id: int, *, reason: str, notes: str | None = None, user_id: int) -> Sale:
    """
    COMPLETED -> VOID. Stock goes back to the originating batches and any
    linked invoice is cancelled.
    """
    reason = (reason or "").strip()
    if not reason:
        raise SaleError("Void reason is required")

    def _op() -> Sale:
        sale = get_for_update(Sale, sale_id)
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status == "VOID":
            raise SaleError("Sale is already voided")
        if sale.status == "REFUNDED":
            raise SaleError("Cannot void a refunded sale")

        refunded = _refunded_quantities(sale.id)
        for item in sale.items:
            qty = Decimal(item.quantity) - refunded.get(item.id, Decimal("0"))
            if qty > 0:
                _restore_item_stock(
                    item, qty,
                    reference_type="SALE_VOID",
                    reference_id=sale.id,
                    notes=f"Void of {sale.sale_number}: {reason}",
                    user_id=user_id,
                )

        cancel_invoices_for_sale(sale.id)

        void_note = f"VOID: {reason}"
        if notes:
            void_note += f"\nNotes: {notes}"
        sale.notes = f"{sale.notes}\n{void_note}" if sale.notes else void_note
        sale.status = "VOID"
        sale.voided_at = utcnow()
        sale.voided_by_id = user_id
        db.session.commit()
        return sale

    sale = run_with_retry(_op)
    invalidate_products()
    invalidate_reports()
    logger.info("Sale %s voided by user %s: %s", sale.sale_number, user_id, reason)
    return sale


def _refunded_quantities(sale_id: int) -> dict[int, Decimal]:
    rows = (
        db.session.query(RefundItem.sale_item_id, func.sum(RefundItem.quantity))
        .join(Refund, Refund.id == RefundItem.refund_id)
        .filter(Refund.sale_id == sale_id)
        .group_by(RefundItem.sale_item_id)
        .all()
    )
    return {item_id: Decimal(qty or 0) for item_id, qty in rows}


def refund_sale(sale_id: int, payload: dict, *, user_id: int) -> Refund:
    """
    Refund some or all items of a COMPLETED sale.

    The refund amount per line is proportional to the line total. Stock is
    restored to the original batch when return_to_inventory is true (default).
    Open invoices linked to the sale are credited. When nothing refundable
    is left the sale becomes REFUNDED.
    """
    reason = (payload.get("reason") or "").strip()
    if not reason:
        raise SaleError("Refund reason is required")
    refund_type = (payload.get("refund_type") or "PARTIAL").upper()
    if refund_type not in ("FULL", "PARTIAL"):
        raise SaleError("refund_type must be FULL or PARTIAL")
    return_to_inventory = payload.get("return_to_inventory", True) is not False

    def _op() -> Refund:
        sale = get_for_update(Sale, sale_id)
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status == "VOID":
            raise SaleError("Cannot refund a voided sale")
        if sale.status == "REFUNDED":
            raise SaleError("Sale has already been fully refunded")

        refunded = _refunded_quantities(sale.id)
        items_by_id = {item.id: item for item in sale.items}

        requested = payload.get("items")
        if not requested and refund_type == "FULL":
            requested = [
                {"sale_item_id": item.id, "quantity": Decimal(item.quantity) - refunded.get(item.id, Decimal("0"))}
                for item in sale.items
                if Decimal(item.quantity) - refunded.get(item.id, Decimal("0")) > 0
            ]
        if not isinstance(requested, list) or not requested:
            raise SaleError("At least one item is required")

        refund = Refund(
            refund_number=next_document_number("REFUND"),
            sale_id=sale.id,
            refund_type=refund_type,
            reason=reason,
            return_to_inventory=return_to_inventory,
            notes=payload.get("notes"),
            processed_by_id=user_id,
        )
        db.session.add(refund)
        db.session.flush()

        total = ZERO
        for n, raw in enumerate(requested, start=1):
            if not isinstance(raw, dict):
                raise SaleError(f"Item {n} is invalid")
            item = items_by_id.get(raw.get("sale_item_id"))
            if item is None:
                raise SaleError(f"Sale item {raw.get('sale_item_id')} does not belong to this sale")
            qty = quantity(to_decimal(raw.get("quantity"), "quantity"))
            if qty <= 0:
                raise SaleError("Refund quantity must be greater than 0")
            already = refunded.get(item.id, Decimal("0"))
            if already + qty > Decimal(item.quantity):
                raise SaleError(f"Refund quantity for {item.product_name} exceeds sold quantity")
            refunded[item.id] = already + qty

            amount = money(Decimal(item.total_price) * qty / Decimal(item.quantity))
            total += amount
            db.session.add(RefundItem(
                refund_id=refund.id,
                sale_item_id=item.id,
                product_id=item.product_id,
                quantity=qty,
                amount=amount,
            ))
            if return_to_inventory:
                _restore_item_stock(
                    item, qty,
                    reference_type="REFUND",
                    reference_id=refund.id,
                    notes=f"Refund {refund.refund_number} of {sale.sale_number}",
                    user_id=user_id,
                )

        refund.total_amount = money(total)

        remaining_credit = refund.total_amount
        for invoice in db.session.query(Invoice).filter(Invoice.sale_id == sale.id).all():
            if remaining_credit <= 0:
                break
            remaining_credit -= apply_credit_note(
                invoice, remaining_credit, reference=refund.refund_number, user_id=user_id
            )

        if all(refunded.get(i.id, Decimal("0")) >= Decimal(i.quantity) for i in sale.items):
            sale.status = "REFUNDED"

        db.session.commit()
        return refund

    refund = run_with_retry(_op)
    invalidate_products()
    invalidate_reports()
    logger.info(
        "Refund %s on sale %s by user %s: %s",
        refund.refund_number, sale_id, user_id, refund.total_amount,
    )
    return refund


# -- Reads --

def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def get_sale_by_number(sale_number: str) -> Sale:
    sale = db.session.query(Sale).filter_by(sale_number=sale_number).first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def _date_filtered(query, start_date=None, end_date=None):
    if start_date or end_date:
        start, end = day_bounds(start_date or end_date, end_date or start_date)
        if start_date:
            query = query.filter(Sale.sale_date >= start)
        if end_date:
            query = query.filter(Sale.sale_date < end)
    return query


def list_sales(
    *,
    start_date=None,
    end_date=None,
    status: str | None = None,
    customer_id: int | None = None,
    cashier_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = _date_filtered(db.session.query(Sale), start_date, end_date)
    if status:
        status = status.upper()
        if status not in SALE_STATUSES:
            raise SaleError(f"Invalid status: {status}")
        query = query.filter(Sale.status == status)
    if customer_id:
        query = query.filter(Sale.customer_id == customer_id)
    if cashier_id:
        query = query.filter(Sale.cashier_id == cashier_id)
    query = query.order_by(Sale.sale_date.desc(), Sale.id.desc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda s: s.to_dict())


def sales_summary(start_date=None, end_date=None) -> dict:
    """Totals over COMPLETED sales only."""
    row = (
        _date_filtered(db.session.query(Sale), start_date, end_date)
        .filter(Sale.status == "COMPLETED")
        .with_entities(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.subtotal), 0),
            func.coalesce(func.sum(Sale.discount_amount), 0),
            func.coalesce(func.sum(Sale.tax_amount), 0),
            func.coalesce(func.sum(Sale.total_amount), 0),
            func.coalesce(func.sum(Sale.total_cost), 0),
            func.coalesce(func.sum(Sale.profit), 0),
        )
        .one()
    )
    count, subtotal, discount, tax, revenue, cost, profit = row
    revenue = money(revenue)
    return {
        "total_sales": count,
        "gross_sales": float(money(subtotal)),
        "total_discounts": float(money(discount)),
        "total_tax": float(money(tax)),
        "total_revenue": float(revenue),
        "total_cost": float(money(cost)),
        "total_profit": float(money(profit)),
        "average_sale": float(money(revenue / count)) if count else 0.0,
    }


def top_products(*, limit: int = 10, start_date=None, end_date=None) -> list[dict]:
    limit = max(1, min(limit or 10, 100))
    rows = (
        _date_filtered(
            db.session.query(
                SaleItem.product_id,
                SaleItem.product_name,
                func.sum(SaleItem.quantity).label("quantity_sold"),
                func.sum(SaleItem.total_price).label("revenue"),
                func.sum(SaleItem.profit).label("profit"),
                func.count(func.distinct(SaleItem.sale_id)).label("sale_count"),
            ).join(Sale, Sale.id == SaleItem.sale_id),
            start_date,
            end_date,
        )
        .filter(Sale.status == "COMPLETED", SaleItem.product_id.isnot(None))
        .group_by(SaleItem.product_id, SaleItem.product_name)
        .order_by(func.sum(SaleItem.quantity).desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": r.product_id,
            "product_name": r.product_name,
            "quantity_sold": float(r.quantity_sold or 0),
            "revenue": float(money(r.revenue)),
            "profit": float(money(r.profit)),
            "sale_count": r.sale_count,
        }
        for r in rows
    ]
