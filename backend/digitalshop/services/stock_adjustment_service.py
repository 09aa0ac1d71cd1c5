# Overview: Manual stock adjustments (damage, expiry, corrections) against batches.

"""
Stock Adjustment Service

Each adjustment is ONE StockMovement with reference_type MANUAL_ADJUSTMENT,
numbered ADJ-YYYY-####, plus the matching batch change, in one transaction.

DIRECTIONS:
- IN:  ADJUSTMENT_IN, RETURN
- OUT: ADJUSTMENT_OUT, DAMAGE, EXPIRY

An OUT adjustment without batch_id touches only the oldest ACTIVE batch
that still has stock and never spills into the next batch. With no such
batch the adjustment is refused rather than recorded against nothing.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func

from ..cache import invalidate_products, invalidate_reports
from ..extensions import db
from ..models import InventoryBatch, Product, StockMovement
from ..responses import paginate
from ..time_utils import day_bounds
from ..validation import NotFoundError, ValidationError, money, quantity, to_decimal
from .concurrency import get_for_update, run_with_retry
from .document_service import next_document_number
from .inventory_service import oldest_active_batch, record_movement, sync_quantity_on_hand

logger = logging.getLogger(__name__)

REFERENCE_TYPE = "MANUAL_ADJUSTMENT"

ADJUSTMENT_TYPES = {
    "ADJUSTMENT_IN": ("Stock Increase", "IN"),
    "ADJUSTMENT_OUT": ("Stock Decrease", "OUT"),
    "DAMAGE": ("Damaged Goods", "OUT"),
    "EXPIRY": ("Expired Goods", "OUT"),
    "RETURN": ("Customer Return", "IN"),
}


class StockAdjustmentError(ValidationError):
    pass


def adjustment_types() -> list[dict]:
    return [
        {"type": key, "label": label, "direction": direction}
        for key, (label, direction) in ADJUSTMENT_TYPES.items()
    ]


def _parse_request(payload: dict) -> dict:
    product_id = payload.get("product_id")
    adjustment_type = (payload.get("adjustment_type") or "").strip().upper()
    reason = (payload.get("reason") or "").strip()

    if not product_id or not adjustment_type or payload.get("quantity") is None or not reason:
        raise StockAdjustmentError("product_id, adjustment_type, quantity and reason are required")
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise StockAdjustmentError(
            f"Invalid adjustment type. Must be one of: {', '.join(ADJUSTMENT_TYPES)}"
        )

    qty = quantity(to_decimal(payload["quantity"], "quantity"))
    if qty <= 0:
        raise StockAdjustmentError("Quantity must be greater than 0")

    unit_cost = None
    if payload.get("unit_cost") is not None:
        unit_cost = money(to_decimal(payload["unit_cost"], "unit_cost"))
        if unit_cost < 0:
            raise StockAdjustmentError("unit_cost cannot be negative")

    return {
        "product_id": product_id,
        "adjustment_type": adjustment_type,
        "quantity": qty,
        "reason": reason,
        "batch_id": payload.get("batch_id"),
        "unit_cost": unit_cost,
        "notes": (payload.get("notes") or "").strip() or None,
    }


def create_adjustment(payload: dict, *, user_id: int) -> StockMovement:
    """
    Apply one stock adjustment.

    Raises:
        StockAdjustmentError: bad input, wrong batch, no stock to take from
        NotFoundError: product or batch missing
    """
    req = _parse_request(payload)
    direction = ADJUSTMENT_TYPES[req["adjustment_type"]][1]

    def _op() -> StockMovement:
        product = get_for_update(Product, req["product_id"])
        if not product:
            raise NotFoundError("Product not found")

        qty: Decimal = req["quantity"]
        number = next_document_number("ADJUSTMENT")
        batch = None

        if req["batch_id"]:
            batch = get_for_update(InventoryBatch, req["batch_id"])
            if not batch:
                raise NotFoundError("Batch not found")
            if batch.product_id != product.id:
                raise StockAdjustmentError("Batch does not belong to this product")

        if direction == "IN":
            if batch is not None:
                batch.quantity = quantity(Decimal(batch.quantity) + qty)
                batch.remaining_quantity = quantity(Decimal(batch.remaining_quantity) + qty)
                if batch.status == "DEPLETED":
                    batch.status = "ACTIVE"
            else:
                batch = InventoryBatch(
                    batch_number=f"ADJ-{number}",
                    product_id=product.id,
                    quantity=qty,
                    remaining_quantity=qty,
                    cost_price=req["unit_cost"] if req["unit_cost"] is not None else money(product.cost_price),
                    status="ACTIVE",
                    source_type="ADJUSTMENT",
                    notes=req["reason"],
                )
                db.session.add(batch)
                db.session.flush()
        else:
            if batch is None:
                batch = oldest_active_batch(product.id)
                if batch is None:
                    raise StockAdjustmentError("No active batch with remaining stock for product")
            left = Decimal(batch.remaining_quantity) - qty
            batch.remaining_quantity = quantity(max(left, Decimal("0")))
            if batch.remaining_quantity <= 0:
                batch.status = "DEPLETED"

        notes = req["reason"] if not req["notes"] else f"{req['reason']}\n{req['notes']}"
        signed = qty if direction == "IN" else -qty
        unit_cost = req["unit_cost"] if req["unit_cost"] is not None else batch.cost_price

        movement = record_movement(
            product_id=product.id,
            movement_type=req["adjustment_type"],
            qty=signed,
            batch_id=batch.id,
            unit_cost=unit_cost,
            reference_type=REFERENCE_TYPE,
            notes=notes,
            user_id=user_id,
            movement_number=number,
        )

        sync_quantity_on_hand(product)
        db.session.commit()
        return movement

    movement = run_with_retry(_op)
    invalidate_products()
    invalidate_reports()
    logger.info(
        "Stock adjustment %s: product=%s type=%s qty=%s user=%s",
        movement.movement_number,
        movement.product_id,
        movement.movement_type,
        movement.quantity,
        user_id,
    )
    return movement


def _adjustments_query():
    return db.session.query(StockMovement).filter(StockMovement.reference_type == REFERENCE_TYPE)


def get_adjustment(adjustment_id: int) -> StockMovement:
    movement = _adjustments_query().filter(StockMovement.id == adjustment_id).first()
    if not movement:
        raise NotFoundError("Stock adjustment not found")
    return movement


def list_adjustments(
    *,
    product_id: int | None = None,
    adjustment_type: str | None = None,
    start_date=None,
    end_date=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = _adjustments_query()
    if product_id:
        query = query.filter(StockMovement.product_id == product_id)
    if adjustment_type:
        query = query.filter(StockMovement.movement_type == adjustment_type.upper())
    if start_date or end_date:
        start, end = day_bounds(start_date or end_date, end_date or start_date)
        if start_date:
            query = query.filter(StockMovement.created_at >= start)
        if end_date:
            query = query.filter(StockMovement.created_at < end)
    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda m: m.to_dict())


def adjustment_summary() -> list[dict]:
    rows = (
        _adjustments_query()
        .with_entities(
            StockMovement.movement_type,
            func.count(StockMovement.id),
            func.coalesce(func.sum(func.abs(StockMovement.quantity)), 0),
        )
        .group_by(StockMovement.movement_type)
        .all()
    )
    return [
        {
            "adjustment_type": movement_type,
            "label": ADJUSTMENT_TYPES.get(movement_type, (movement_type, None))[0],
            "count": count,
            "total_quantity": float(total),
        }
        for movement_type, count, total in rows
    ]
