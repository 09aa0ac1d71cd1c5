# Overview: Batch-level stock operations: FEFO depletion, restores, movements and valuation.

"""
Inventory Service

WHY: Stock lives in InventoryBatch rows; Product.quantity_on_hand is a cached
sum that must be refreshed after every batch mutation (sync_quantity_on_hand).
Every quantity change is also written to the append-only StockMovement ledger.

DEPLETION ORDER (FEFO):
1. expiry_date ascending, batches without expiry last
2. received_date ascending
3. created_at ascending (tie-break for same-day receipts)

Products that have never had a batch (legacy/opening stock) keep their
quantity_on_hand as the only source of truth.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..formatting import format_qty
from ..models import GoodsReceipt, InventoryBatch, Product, Refund, Sale, StockMovement
from ..responses import paginate
from ..time_utils import day_bounds, today
from ..validation import NotFoundError, ValidationError, money, quantity
from .concurrency import lock_for_update
from .document_service import next_document_number

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

MOVEMENT_TYPES = {
    "GOODS_RECEIPT",
    "SALE",
    "ADJUSTMENT_IN",
    "ADJUSTMENT_OUT",
    "TRANSFER_IN",
    "TRANSFER_OUT",
    "RETURN",
    "DAMAGE",
    "EXPIRY",
}

INBOUND_TYPES = {"GOODS_RECEIPT", "RETURN", "ADJUSTMENT_IN", "TRANSFER_IN"}
OUTBOUND_TYPES = {"SALE", "ADJUSTMENT_OUT", "TRANSFER_OUT"}
ADJUSTMENT_TYPES = {"ADJUSTMENT_IN", "ADJUSTMENT_OUT", "DAMAGE", "EXPIRY"}

BATCH_STATUSES = {"ACTIVE", "DEPLETED", "EXPIRED", "QUARANTINED"}


class InsufficientStockError(ValidationError):
    """Raised when batches cannot cover a requested deduction."""
    pass


def has_batches(product_id: int) -> bool:
    return (
        db.session.query(InventoryBatch.id)
        .filter(InventoryBatch.product_id == product_id)
        .first()
        is not None
    )


def sync_quantity_on_hand(product: Product) -> Decimal:
    """
    Recompute quantity_on_hand = sum(remaining_quantity of ACTIVE batches).

    Skipped for products without any batch row.
    """
    db.session.flush()
    if not has_batches(product.id):
        return Decimal(product.quantity_on_hand or 0)
    total = (
        db.session.query(func.coalesce(func.sum(InventoryBatch.remaining_quantity), 0))
        .filter(InventoryBatch.product_id == product.id, InventoryBatch.status == "ACTIVE")
        .scalar()
    )
    product.quantity_on_hand = quantity(total)
    return product.quantity_on_hand


def fefo_batches_query(product_id: int):
    return (
        db.session.query(InventoryBatch)
        .filter(
            InventoryBatch.product_id == product_id,
            InventoryBatch.status == "ACTIVE",
            InventoryBatch.remaining_quantity > 0,
        )
        .order_by(
            InventoryBatch.expiry_date.is_(None).asc(),
            InventoryBatch.expiry_date.asc(),
            InventoryBatch.received_date.asc(),
            InventoryBatch.created_at.asc(),
            InventoryBatch.id.asc(),
        )
    )


def oldest_active_batch(product_id: int) -> InventoryBatch | None:
    """Oldest ACTIVE batch with stock, by received_date then created_at (FIFO)."""
    return lock_for_update(
        db.session.query(InventoryBatch)
        .filter(
            InventoryBatch.product_id == product_id,
            InventoryBatch.status == "ACTIVE",
            InventoryBatch.remaining_quantity > 0,
        )
        .order_by(
            InventoryBatch.received_date.asc(),
            InventoryBatch.created_at.asc(),
            InventoryBatch.id.asc(),
        )
    ).first()


def unit_cost_for(product: Product) -> Decimal:
    """Cost used when no batch carries one."""
    cost = product.average_cost or product.cost_price or ZERO
    return money(cost)


def deduct_fefo(product: Product, qty: Decimal) -> list[tuple[InventoryBatch | None, Decimal]]:
    """
    Consume qty from ACTIVE batches in FEFO order.

    Returns [(batch, taken_qty), ...]. For a product with no batches the
    result is [(None, qty)] and quantity_on_hand is decremented directly.

    Raises InsufficientStockError if the batches run out first.
    """
    qty = quantity(qty)
    if qty <= 0:
        raise ValidationError("Quantity must be greater than 0")

    if not has_batches(product.id):
        available = Decimal(product.quantity_on_hand or 0)
        if available < qty:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}. Available: {format_qty(available)}, "
                f"requested: {format_qty(qty)}"
            )
        product.quantity_on_hand = quantity(available - qty)
        return [(None, qty)]

    allocations: list[tuple[InventoryBatch | None, Decimal]] = []
    remaining = qty
    for batch in lock_for_update(fefo_batches_query(product.id)).all():
        if remaining <= 0:
            break
        take = min(Decimal(batch.remaining_quantity), remaining)
        batch.remaining_quantity = quantity(Decimal(batch.remaining_quantity) - take)
        if batch.remaining_quantity <= 0:
            batch.status = "DEPLETED"
        allocations.append((batch, take))
        remaining -= take

    if remaining > 0:
        available = qty - remaining
        raise InsufficientStockError(
            f"Insufficient stock for {product.name}. Available: {format_qty(available)}, "
            f"requested: {format_qty(qty)}"
        )

    sync_quantity_on_hand(product)
    return allocations


def restore_batch(batch: InventoryBatch, qty: Decimal) -> None:
    """remaining = min(quantity, remaining + qty); the batch becomes ACTIVE again."""
    restored = Decimal(batch.remaining_quantity) + quantity(qty)
    batch.remaining_quantity = quantity(min(Decimal(batch.quantity), restored))
    batch.status = "ACTIVE"


def restore_stock(product: Product, batch: InventoryBatch | None, qty: Decimal) -> None:
    if batch is not None:
        restore_batch(batch, qty)
        sync_quantity_on_hand(product)
    else:
        product.quantity_on_hand = quantity(Decimal(product.quantity_on_hand or 0) + quantity(qty))


def record_movement(
    *,
    product_id: int,
    movement_type: str,
    qty: Decimal,
    batch_id: int | None = None,
    unit_cost: Decimal | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
    movement_number: str | None = None,
) -> StockMovement:
    """
    Append one row to the stock ledger. qty must already carry its sign.

    Does not commit; callers own the transaction.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")

    movement = StockMovement(
        movement_number=movement_number or next_document_number("MOVEMENT"),
        product_id=product_id,
        batch_id=batch_id,
        movement_type=movement_type,
        quantity=quantity(qty),
        unit_cost=money(unit_cost) if unit_cost is not None else None,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by_id=user_id,
    )
    db.session.add(movement)
    return movement


# -- Reads --

def list_batches(*, product_id: int | None = None, status: str | None = None) -> list[InventoryBatch]:
    query = db.session.query(InventoryBatch)
    if product_id:
        query = query.filter(InventoryBatch.product_id == product_id)
    if status:
        status = status.upper()
        if status not in BATCH_STATUSES:
            raise ValidationError(f"Invalid batch status: {status}")
        query = query.filter(InventoryBatch.status == status)
    return query.order_by(
        InventoryBatch.expiry_date.is_(None).asc(),
        InventoryBatch.expiry_date.asc(),
        InventoryBatch.received_date.asc(),
    ).all()


def expiring_batches(days: int = 30) -> list[InventoryBatch]:
    if days < 0:
        raise ValidationError("days cannot be negative")
    horizon = today() + timedelta(days=days)
    return (
        db.session.query(InventoryBatch)
        .filter(
            InventoryBatch.status == "ACTIVE",
            InventoryBatch.remaining_quantity > 0,
            InventoryBatch.expiry_date.isnot(None),
            InventoryBatch.expiry_date <= horizon,
        )
        .order_by(InventoryBatch.expiry_date.asc())
        .all()
    )


def _movements_query(
    *,
    product_id: int | None = None,
    batch_id: int | None = None,
    movement_type: str | None = None,
    reference_type: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
):
    query = db.session.query(StockMovement)
    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if batch_id:
        query = query.filter(StockMovement.batch_id == batch_id)
    if movement_type:
        movement_type = movement_type.upper()
        if movement_type not in MOVEMENT_TYPES:
            raise ValidationError(f"Unknown movement type: {movement_type}")
        query = query.filter(StockMovement.movement_type == movement_type)
    if reference_type:
        query = query.filter(StockMovement.reference_type == reference_type.upper())
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date cannot be after end_date")
    if start_date:
        query = query.filter(StockMovement.created_at >= day_bounds(start_date, start_date)[0])
    if end_date:
        query = query.filter(StockMovement.created_at < day_bounds(end_date, end_date)[1])
    return query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())


def list_movements(*, page: int | None = None, per_page: int | None = None, **filters) -> dict:
    """
    Stock ledger rows, newest first.

    Filters: product_id, batch_id, movement_type, reference_type,
    start_date, end_date (calendar days, inclusive).
    """
    query = _movements_query(**filters)
    return paginate(query, page=page, per_page=per_page, serializer=lambda m: m.to_dict())


def _reference_number(movement: StockMovement) -> str | None:
    """Document number of whatever caused the movement."""
    if movement.reference_type == "MANUAL_ADJUSTMENT":
        return movement.movement_number
    source = {
        "SALE": Sale.sale_number,
        "SALE_VOID": Sale.sale_number,
        "GOODS_RECEIPT": GoodsReceipt.receipt_number,
        "REFUND": Refund.refund_number,
    }.get(movement.reference_type or "")
    if source is None or movement.reference_id is None:
        return None
    return db.session.query(source).filter(source.class_.id == movement.reference_id).scalar()


def get_movement(movement_id: int) -> dict:
    movement = db.session.query(StockMovement).filter_by(id=movement_id).first()
    if not movement:
        raise NotFoundError("Stock movement not found")
    data = movement.to_dict()
    data["reference_number"] = _reference_number(movement)
    return data


def movement_summary() -> dict:
    """Movement counts by direction, overall and for the current UTC day."""
    rows = (
        db.session.query(StockMovement.movement_type, func.count(StockMovement.id))
        .group_by(StockMovement.movement_type)
        .all()
    )
    start, end = day_bounds(today(), today())
    today_rows = (
        db.session.query(StockMovement.movement_type, func.count(StockMovement.id))
        .filter(StockMovement.created_at >= start, StockMovement.created_at < end)
        .group_by(StockMovement.movement_type)
        .all()
    )

    def _bucket(counts, types):
        return sum(count for movement_type, count in counts if movement_type in types)

    return {
        "total_movements": sum(count for _, count in rows),
        "in_movements": _bucket(rows, INBOUND_TYPES),
        "out_movements": _bucket(rows, OUTBOUND_TYPES),
        "adjustment_movements": _bucket(rows, ADJUSTMENT_TYPES),
        "today": {
            "in": _bucket(today_rows, INBOUND_TYPES),
            "out": _bucket(today_rows, OUTBOUND_TYPES),
            "adjustment": _bucket(today_rows, ADJUSTMENT_TYPES),
        },
    }


def inventory_valuation() -> dict:
    """Current stock value per active product (batch cost where batches exist)."""
    batch_values = dict(
        db.session.query(
            InventoryBatch.product_id,
            func.sum(InventoryBatch.remaining_quantity * InventoryBatch.cost_price),
        )
        .filter(InventoryBatch.status == "ACTIVE")
        .group_by(InventoryBatch.product_id)
        .all()
    )
    batched = {
        row[0]
        for row in db.session.query(InventoryBatch.product_id).distinct().all()
    }

    items = []
    total_value = ZERO
    total_units = ZERO
    for product in (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.name.asc())
    ):
        qty = Decimal(product.quantity_on_hand or 0)
        if product.id in batched:
            value = money(batch_values.get(product.id) or 0)
        else:
            value = money(qty * Decimal(product.cost_price or 0))
        total_value += value
        total_units += qty
        items.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "quantity_on_hand": float(qty),
            "value": float(value),
        })

    return {
        "items": items,
        "total_products": len(items),
        "total_units": float(total_units),
        "total_value": float(money(total_value)),
    }
