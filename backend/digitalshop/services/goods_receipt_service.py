# Overview: Goods receipts: draft receiving documents that become batches on finalize.

"""
Goods Receipt Service

LIFECYCLE:
1. DRAFT: created, items editable
2. COMPLETED: finalized; batches + GOODS_RECEIPT movements written, costs updated
3. CANCELLED: abandoned before finalize

IMMUTABLE: COMPLETED and CANCELLED receipts cannot change.

FINALIZE is all-or-nothing: every item is validated before the first batch
is touched, so a bad line never leaves a half-received document behind.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func

from ..cache import invalidate_products, invalidate_reports
from ..extensions import db
from ..models import GoodsReceipt, GoodsReceiptItem, InventoryBatch, Product, PurchaseOrder, Supplier
from ..responses import paginate
from ..time_utils import parse_iso_date, parse_iso_datetime, utcnow
from ..validation import MONEY_TOLERANCE, NotFoundError, ValidationError, money, quantity, to_decimal
from . import purchase_order_service
from .concurrency import get_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import record_movement, sync_quantity_on_hand

logger = logging.getLogger(__name__)

STATUS_DRAFT = "DRAFT"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"

DISCREPANCY_TYPES = {"SHORT", "OVER", "DAMAGED", "WRONG_ITEM"}


class GoodsReceiptValidationError(ValidationError):
    """Raised when goods receipt data fails validation."""
    pass


class GoodsReceiptStateError(ValidationError):
    """Raised when an operation is invalid for the current receipt state."""
    pass


def _parse_expiry(value) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise GoodsReceiptValidationError("expiry_date must be a YYYY-MM-DD date")


def _match_order_line(raw: dict, index: int, product: Product, order: PurchaseOrder | None):
    """The purchase order line a receipt line fills, or None."""
    line_id = raw.get("purchase_order_item_id")
    if order is None:
        if line_id:
            raise GoodsReceiptValidationError(f"Item {index} has purchase_order_item_id but no purchase_order_id")
        return None
    if line_id:
        line = next((item for item in order.items if item.id == line_id), None)
        if line is None:
            raise GoodsReceiptValidationError(f"Item {index} is not on purchase order {order.order_number}")
        if line.product_id != product.id:
            raise GoodsReceiptValidationError(f"Item {index} ({product.name}) does not match its purchase order line")
        return line
    # Unlinked lines attach to the first order line for the same product
    return next((item for item in order.items if item.product_id == product.id), None)


def _parse_item(raw: dict, index: int, order: PurchaseOrder | None = None) -> GoodsReceiptItem:
    if not isinstance(raw, dict) or not raw.get("product_id"):
        raise GoodsReceiptValidationError(f"Item {index} requires product_id")

    product = db.session.query(Product).filter_by(id=raw["product_id"]).first()
    if not product:
        raise NotFoundError(f"Product {raw['product_id']} not found")

    raw_qty = raw.get("received_quantity", raw.get("quantity"))
    if raw_qty is None or raw.get("cost_price") is None:
        raise GoodsReceiptValidationError(f"Item {index} requires quantity and cost_price")

    qty = quantity(to_decimal(raw_qty, "quantity"))
    cost = money(to_decimal(raw["cost_price"], "cost_price"))
    if qty < 0:
        raise GoodsReceiptValidationError(f"Item {index} ({product.name}) quantity cannot be negative")
    if cost < 0:
        raise GoodsReceiptValidationError(f"Item {index} ({product.name}) cost price cannot be negative")

    discrepancy = raw.get("discrepancy_type")
    if discrepancy and discrepancy.upper() not in DISCREPANCY_TYPES:
        raise GoodsReceiptValidationError(f"Invalid discrepancy type: {discrepancy}")

    line = _match_order_line(raw, index, product, order)

    return GoodsReceiptItem(
        product_id=product.id,
        product=product,
        purchase_order_item_id=line.id if line is not None else None,
        received_quantity=qty,
        cost_price=cost,
        batch_number=(raw.get("batch_number") or "").strip() or None,
        expiry_date=_parse_expiry(raw.get("expiry_date")),
        discrepancy_type=discrepancy.upper() if discrepancy else None,
        notes=raw.get("notes"),
    )


def _recalculate_total(receipt: GoodsReceipt) -> None:
    receipt.total_value = money(
        sum(
            (Decimal(i.received_quantity) * Decimal(i.cost_price) for i in receipt.items),
            Decimal("0"),
        )
    )


def get_goods_receipt(receipt_id: int) -> GoodsReceipt:
    receipt = db.session.query(GoodsReceipt).filter_by(id=receipt_id).first()
    if not receipt:
        raise NotFoundError("Goods receipt not found")
    return receipt


def create_goods_receipt(payload: dict, *, user_id: int) -> dict:
    """
    Create a DRAFT receipt (finalized immediately when auto_complete is true).

    With purchase_order_id the order must be APPROVED or PARTIAL, the
    supplier comes from the order and omitted items default to whatever
    is still outstanding on it.

    Returns {"goods_receipt": ..., "cost_alerts": [...]}.
    """
    supplier_id = payload.get("supplier_id")
    items = payload.get("items")

    order = None
    if payload.get("purchase_order_id"):
        order = purchase_order_service.get_purchase_order(payload["purchase_order_id"])
        purchase_order_service.ensure_receivable(order)
        if supplier_id and supplier_id != order.supplier_id:
            raise GoodsReceiptValidationError("supplier_id does not match the purchase order")
        supplier_id = order.supplier_id
        if not items:
            items = purchase_order_service.receipt_lines(order)

    if not isinstance(items, list) or not items:
        raise GoodsReceiptValidationError("At least one item is required")

    if supplier_id and order is None:
        supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
        if not supplier or not supplier.is_active:
            raise NotFoundError("Supplier not found")

    received_date = utcnow()
    if payload.get("received_date"):
        try:
            received_date = parse_iso_datetime(payload["received_date"])
        except ValueError:
            raise GoodsReceiptValidationError("received_date must be an ISO-8601 datetime")

    receipt = GoodsReceipt(
        receipt_number=next_document_number("GOODS_RECEIPT"),
        supplier_id=supplier_id,
        purchase_order_id=order.id if order is not None else None,
        received_date=received_date,
        received_by_id=user_id,
        status=STATUS_DRAFT,
        notes=payload.get("notes"),
    )
    receipt.items = [_parse_item(raw, i, order) for i, raw in enumerate(items, start=1)]
    _recalculate_total(receipt)

    db.session.add(receipt)
    db.session.commit()
    logger.info("Goods receipt %s created with %d items", receipt.receipt_number, len(receipt.items))

    if payload.get("auto_complete") is True:
        return finalize_goods_receipt(receipt.id, user_id=user_id)
    return {"goods_receipt": receipt.to_dict(include_items=True), "cost_alerts": []}


def update_goods_receipt_item(receipt_id: int, item_id: int, payload: dict) -> GoodsReceipt:
    receipt = get_goods_receipt(receipt_id)
    if receipt.status != STATUS_DRAFT:
        raise GoodsReceiptStateError(
            f"Cannot modify {receipt.status} goods receipt. Only DRAFT receipts can be edited."
        )

    item = next((i for i in receipt.items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Goods receipt item not found")

    raw_qty = payload.get("received_quantity", payload.get("quantity"))
    if raw_qty is not None:
        qty = quantity(to_decimal(raw_qty, "quantity"))
        if qty < 0:
            raise GoodsReceiptValidationError("quantity cannot be negative")
        item.received_quantity = qty
    if payload.get("cost_price") is not None:
        cost = money(to_decimal(payload["cost_price"], "cost_price"))
        if cost < 0:
            raise GoodsReceiptValidationError("cost_price cannot be negative")
        item.cost_price = cost
    if "batch_number" in payload:
        item.batch_number = (payload.get("batch_number") or "").strip() or None
    if "expiry_date" in payload:
        item.expiry_date = _parse_expiry(payload.get("expiry_date"))
    if "notes" in payload:
        item.notes = payload.get("notes")

    _recalculate_total(receipt)
    db.session.commit()
    return receipt


def cancel_goods_receipt(receipt_id: int, *, user_id: int) -> GoodsReceipt:
    receipt = get_goods_receipt(receipt_id)
    if receipt.status == STATUS_COMPLETED:
        raise GoodsReceiptStateError("Cannot cancel a completed goods receipt")
    if receipt.status == STATUS_CANCELLED:
        raise GoodsReceiptStateError("Goods receipt is already cancelled")

    receipt.status = STATUS_CANCELLED
    db.session.commit()
    logger.info("Goods receipt %s cancelled by user %s", receipt.receipt_number, user_id)
    return receipt


def _validate_for_finalize(receipt: GoodsReceipt) -> None:
    if receipt.status != STATUS_DRAFT:
        raise GoodsReceiptStateError(
            f"Cannot finalize {receipt.status} goods receipt. Only DRAFT receipts can be finalized."
        )
    if not receipt.items:
        raise GoodsReceiptValidationError("Goods receipt has no items")

    for n, item in enumerate(receipt.items, start=1):
        name = item.product.name if item.product else f"product {item.product_id}"
        if item.received_quantity is None or Decimal(item.received_quantity) <= 0:
            raise GoodsReceiptValidationError(f"Item {n} ({name}) has invalid quantity")
        if item.cost_price is None or Decimal(item.cost_price) < 0:
            raise GoodsReceiptValidationError(f"Item {n} ({name}) has invalid cost price")


def _receive_into_batch(receipt: GoodsReceipt, item: GoodsReceiptItem, n: int) -> InventoryBatch:
    batch_number = item.batch_number or f"BATCH-{receipt.receipt_number}-{n}"
    qty = Decimal(item.received_quantity)

    batch = (
        db.session.query(InventoryBatch)
        .filter_by(product_id=item.product_id, batch_number=batch_number)
        .first()
    )
    if batch is not None:
        batch.quantity = quantity(Decimal(batch.quantity) + qty)
        batch.remaining_quantity = quantity(Decimal(batch.remaining_quantity) + qty)
        batch.cost_price = item.cost_price
        batch.status = "ACTIVE"
        if item.expiry_date:
            batch.expiry_date = item.expiry_date
    else:
        batch = InventoryBatch(
            batch_number=batch_number,
            product_id=item.product_id,
            quantity=qty,
            remaining_quantity=qty,
            cost_price=item.cost_price,
            expiry_date=item.expiry_date,
            received_date=receipt.received_date,
            status="ACTIVE",
            source_type="GOODS_RECEIPT",
            source_id=receipt.id,
        )
        db.session.add(batch)
    db.session.flush()
    item.batch_number = batch_number
    return batch


def _update_product_costs(product: Product, qty: Decimal, cost: Decimal) -> dict | None:
    """
    Weighted average over stock on hand before this receipt.

    Returns a cost alert when the unit cost moved by more than a cent.
    """
    old_cost = money(product.cost_price)
    on_hand = max(Decimal(product.quantity_on_hand or 0), Decimal("0"))
    old_avg = Decimal(product.average_cost or old_cost)

    if on_hand + qty > 0:
        product.average_cost = money((old_avg * on_hand + cost * qty) / (on_hand + qty))
    product.last_cost = cost
    product.cost_price = cost

    if abs(cost - old_cost) > MONEY_TOLERANCE:
        change = None
        if old_cost > 0:
            change = float(((cost - old_cost) / old_cost * 100).quantize(Decimal("0.01")))
        return {
            "product_id": product.id,
            "product_name": product.name,
            "old_cost": float(old_cost),
            "new_cost": float(cost),
            "change_percent": change,
        }
    return None


def finalize_goods_receipt(receipt_id: int, *, user_id: int) -> dict:
    """
    DRAFT -> COMPLETED. Creates/merges batches, posts movements, updates costs.

    Returns {"goods_receipt": ..., "cost_alerts": [...]}.
    """
    def _op() -> tuple[GoodsReceipt, list]:
        receipt = get_for_update(GoodsReceipt, receipt_id)
        if not receipt:
            raise NotFoundError("Goods receipt not found")
        _validate_for_finalize(receipt)

        order = None
        if receipt.purchase_order_id:
            order = get_for_update(PurchaseOrder, receipt.purchase_order_id)
            purchase_order_service.ensure_receivable(order)

        alerts = []
        for n, item in enumerate(receipt.items, start=1):
            product = get_for_update(Product, item.product_id)
            qty = Decimal(item.received_quantity)
            cost = money(item.cost_price)

            batch = _receive_into_batch(receipt, item, n)
            record_movement(
                product_id=product.id,
                movement_type="GOODS_RECEIPT",
                qty=qty,
                batch_id=batch.id,
                unit_cost=cost,
                reference_type="GOODS_RECEIPT",
                reference_id=receipt.id,
                notes=f"Received via {receipt.receipt_number}",
                user_id=user_id,
            )

            alert = _update_product_costs(product, qty, cost)
            if alert:
                alerts.append(alert)
            sync_quantity_on_hand(product)

        if order is not None:
            purchase_order_service.record_receipt(order, receipt)

        receipt.status = STATUS_COMPLETED
        receipt.completed_at = utcnow()
        db.session.commit()
        return receipt, alerts

    receipt, alerts = run_with_retry(_op)
    invalidate_products()
    invalidate_reports()
    logger.info(
        "Goods receipt %s finalized by user %s (%d items, %d cost alerts)",
        receipt.receipt_number, user_id, len(receipt.items), len(alerts),
    )
    return {"goods_receipt": receipt.to_dict(include_items=True), "cost_alerts": alerts}


def list_goods_receipts(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(GoodsReceipt)
    if status:
        query = query.filter(GoodsReceipt.status == status.upper())
    if supplier_id:
        query = query.filter(GoodsReceipt.supplier_id == supplier_id)
    query = query.order_by(GoodsReceipt.received_date.desc(), GoodsReceipt.id.desc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda r: r.to_dict())


def goods_receipt_summary() -> dict:
    counts = dict(
        db.session.query(GoodsReceipt.status, func.count(GoodsReceipt.id))
        .group_by(GoodsReceipt.status)
        .all()
    )
    completed_value = (
        db.session.query(func.coalesce(func.sum(GoodsReceipt.total_value), 0))
        .filter(GoodsReceipt.status == STATUS_COMPLETED)
        .scalar()
    )
    return {
        "total": sum(counts.values()),
        "completed": counts.get(STATUS_COMPLETED, 0),
        "draft": counts.get(STATUS_DRAFT, 0),
        "cancelled": counts.get(STATUS_CANCELLED, 0),
        "total_value": float(money(completed_value)),
    }
