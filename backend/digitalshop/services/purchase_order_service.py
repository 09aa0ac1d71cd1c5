# Overview: Purchase orders: what was ordered from a supplier and how much has arrived.

"""
Purchase Order Service

LIFECYCLE:
1. DRAFT -> SENT -> APPROVED (SENT is optional)
2. APPROVED -> PARTIAL -> RECEIVED, driven by finalized goods receipts
3. DRAFT / SENT / APPROVED -> CANCELLED

A PARTIAL order may be closed short by moving it to RECEIVED by hand.
Stock never moves here; goods_receipt_service owns batches and movements
and calls record_receipt() inside its finalize transaction.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, Supplier
from ..responses import paginate
from ..time_utils import parse_iso_date, today, utcnow
from ..validation import NotFoundError, ValidationError, money, quantity, to_decimal
from .document_service import next_document_number

logger = logging.getLogger(__name__)

STATUS_DRAFT = "DRAFT"
STATUS_SENT = "SENT"
STATUS_APPROVED = "APPROVED"
STATUS_PARTIAL = "PARTIAL"
STATUS_RECEIVED = "RECEIVED"
STATUS_CANCELLED = "CANCELLED"

PO_STATUSES = (STATUS_DRAFT, STATUS_SENT, STATUS_APPROVED, STATUS_PARTIAL, STATUS_RECEIVED, STATUS_CANCELLED)

# Status changes a user may request. PARTIAL only ever comes from receiving.
MANUAL_TRANSITIONS = {
    STATUS_DRAFT: {STATUS_SENT, STATUS_APPROVED, STATUS_CANCELLED},
    STATUS_SENT: {STATUS_APPROVED, STATUS_CANCELLED},
    STATUS_APPROVED: {STATUS_CANCELLED},
    STATUS_PARTIAL: {STATUS_RECEIVED},
    STATUS_RECEIVED: set(),
    STATUS_CANCELLED: set(),
}

RECEIVABLE_STATUSES = {STATUS_APPROVED, STATUS_PARTIAL}


class PurchaseOrderValidationError(ValidationError):
    """Raised when purchase order data fails validation."""
    pass


class PurchaseOrderStateError(ValidationError):
    """Raised when an operation is invalid for the order's current status."""
    pass


def _parse_date(value, field: str) -> date | None:
    if value in (None, ""):
        return None
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise PurchaseOrderValidationError(f"{field} must be a YYYY-MM-DD date")


def _parse_item(raw, index: int) -> PurchaseOrderItem:
    if not isinstance(raw, dict) or not raw.get("product_id"):
        raise PurchaseOrderValidationError(f"Item {index} requires product_id")

    product = db.session.query(Product).filter_by(id=raw["product_id"]).first()
    if not product or not product.is_active:
        raise NotFoundError(f"Product {raw['product_id']} not found")

    raw_qty = raw.get("ordered_quantity", raw.get("quantity"))
    if raw_qty is None or raw.get("unit_price") is None:
        raise PurchaseOrderValidationError(f"Item {index} requires ordered_quantity and unit_price")

    qty = quantity(to_decimal(raw_qty, "ordered_quantity"))
    price = money(to_decimal(raw["unit_price"], "unit_price"))
    if qty <= 0:
        raise PurchaseOrderValidationError(f"Item {index} ({product.name}) quantity must be greater than 0")
    if price < 0:
        raise PurchaseOrderValidationError(f"Item {index} ({product.name}) unit price cannot be negative")

    return PurchaseOrderItem(
        product_id=product.id,
        product=product,
        ordered_quantity=qty,
        received_quantity=Decimal("0"),
        unit_price=price,
        total_price=money(qty * price),
        notes=raw.get("notes"),
    )


def get_purchase_order(order_id: int) -> PurchaseOrder:
    order = db.session.query(PurchaseOrder).filter_by(id=order_id).first()
    if not order:
        raise NotFoundError("Purchase order not found")
    return order


def list_purchase_orders(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(PurchaseOrder)
    if status:
        status = status.upper()
        if status not in PO_STATUSES:
            raise PurchaseOrderValidationError(f"Invalid status: {status}")
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    query = query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda o: o.to_dict())


def create_purchase_order(payload: dict, *, user_id: int) -> PurchaseOrder:
    """
    Create a DRAFT order. total_amount is computed from the items.

    payment_terms falls back to the supplier's terms.
    """
    supplier_id = payload.get("supplier_id")
    if not supplier_id:
        raise PurchaseOrderValidationError("supplier_id is required")
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier or not supplier.is_active:
        raise NotFoundError("Supplier not found")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise PurchaseOrderValidationError("Purchase order must have at least one item")

    order_date = _parse_date(payload.get("order_date"), "order_date") or today()
    expected = _parse_date(payload.get("expected_delivery_date"), "expected_delivery_date")
    if expected and expected < order_date:
        raise PurchaseOrderValidationError("expected_delivery_date cannot be before order_date")

    order = PurchaseOrder(
        order_number=next_document_number("PURCHASE_ORDER"),
        supplier_id=supplier.id,
        order_date=order_date,
        expected_delivery_date=expected,
        status=STATUS_DRAFT,
        payment_terms=payload.get("payment_terms") or supplier.payment_terms,
        notes=payload.get("notes"),
        created_by_id=user_id,
    )
    order.items = [_parse_item(raw, i) for i, raw in enumerate(items, start=1)]
    order.total_amount = money(sum((Decimal(i.total_price) for i in order.items), Decimal("0")))

    db.session.add(order)
    db.session.commit()
    logger.info(
        "Purchase order %s created for supplier %s (%d items, total %s)",
        order.order_number, supplier.id, len(order.items), order.total_amount,
    )
    return order


def update_status(order_id: int, status: str, *, user_id: int) -> PurchaseOrder:
    status = (status or "").upper()
    if not status:
        raise PurchaseOrderValidationError("status is required")
    if status not in PO_STATUSES:
        raise PurchaseOrderValidationError(f"Invalid status: {status}")

    order = get_purchase_order(order_id)
    if order.status == status:
        raise PurchaseOrderStateError(f"Purchase order is already {status}")
    if status not in MANUAL_TRANSITIONS[order.status]:
        raise PurchaseOrderStateError(
            f"Cannot change purchase order status from {order.status} to {status}"
        )

    previous = order.status
    order.status = status
    if status == STATUS_SENT:
        order.sent_date = utcnow()
    elif status == STATUS_APPROVED:
        order.approved_by_id = user_id
        order.approved_at = utcnow()
    db.session.commit()
    logger.info("Purchase order %s: %s -> %s by user %s", order.order_number, previous, status, user_id)
    return order


def approve_purchase_order(order_id: int, *, user_id: int) -> PurchaseOrder:
    return update_status(order_id, STATUS_APPROVED, user_id=user_id)


def cancel_purchase_order(order_id: int, *, user_id: int) -> PurchaseOrder:
    return update_status(order_id, STATUS_CANCELLED, user_id=user_id)


def ensure_receivable(order: PurchaseOrder) -> None:
    if order.status not in RECEIVABLE_STATUSES:
        raise PurchaseOrderStateError(
            f"Purchase order {order.order_number} is {order.status}. "
            f"Only APPROVED or PARTIAL orders can be received."
        )


def receipt_lines(order: PurchaseOrder) -> list[dict]:
    """Goods receipt item payloads for everything still outstanding on the order."""
    lines = [
        {
            "product_id": item.product_id,
            "purchase_order_item_id": item.id,
            "quantity": Decimal(item.outstanding_quantity),
            "cost_price": Decimal(item.unit_price),
        }
        for item in order.items
        if Decimal(item.outstanding_quantity) > 0
    ]
    if not lines:
        raise PurchaseOrderStateError(f"Purchase order {order.order_number} has nothing left to receive")
    return lines


def record_receipt(order: PurchaseOrder, receipt) -> None:
    """
    Add a finalized receipt's quantities to the order lines and move the
    order to PARTIAL or RECEIVED. Does not commit.
    """
    lines = {item.id: item for item in order.items}
    for received in receipt.items:
        line = lines.get(received.purchase_order_item_id)
        if line is None:
            continue
        line.received_quantity = quantity(Decimal(line.received_quantity or 0) + Decimal(received.received_quantity))

    complete = all(Decimal(line.received_quantity) >= Decimal(line.ordered_quantity) for line in order.items)
    order.status = STATUS_RECEIVED if complete else STATUS_PARTIAL
    logger.info("Purchase order %s is now %s after %s", order.order_number, order.status, receipt.receipt_number)


def purchase_order_summary() -> dict:
    counts = dict(
        db.session.query(PurchaseOrder.status, func.count(PurchaseOrder.id))
        .group_by(PurchaseOrder.status)
        .all()
    )
    open_value = (
        db.session.query(func.coalesce(func.sum(PurchaseOrder.total_amount), 0))
        .filter(PurchaseOrder.status.in_((STATUS_DRAFT, STATUS_SENT, STATUS_APPROVED, STATUS_PARTIAL)))
        .scalar()
    )
    data = {status.lower(): counts.get(status, 0) for status in PO_STATUSES}
    data["total"] = sum(counts.values())
    data["open_value"] = float(money(open_value))
    return data
