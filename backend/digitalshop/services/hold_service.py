# Overview: Parked POS carts (hold / resume / cancel / expire).

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import HeldOrder, HeldOrderItem
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, money, quantity, to_decimal
from .document_service import next_document_number

logger = logging.getLogger(__name__)


class HoldError(ValidationError):
    pass


class HoldForbiddenError(PermissionError):
    """Hold belongs to another user (403)."""
    status = 403


class HoldExpiredError(Exception):
    """Hold is past its expiry (410 Gone)."""
    status = 410


class HoldStateError(ConflictError):
    pass


def _money_field(data: dict, key: str) -> Decimal:
    value = data.get(key)
    if value is None:
        return Decimal("0.00")
    result = money(to_decimal(value, key))
    if result < 0:
        raise HoldError(f"{key} cannot be negative")
    return result


def _build_item(raw: dict, index: int) -> HeldOrderItem:
    if not isinstance(raw, dict):
        raise HoldError(f"Item {index + 1} is invalid")
    name = (raw.get("product_name") or raw.get("name") or "").strip()
    if not name:
        raise HoldError(f"Item {index + 1} requires product_name")
    if raw.get("quantity") is None or raw.get("unit_price") is None:
        raise HoldError(f"Item {index + 1} requires quantity and unit_price")

    qty = quantity(to_decimal(raw["quantity"], "quantity"))
    if qty <= 0:
        raise HoldError(f"Item {index + 1} quantity must be greater than 0")
    unit_price = _money_field(raw, "unit_price")

    subtotal = raw.get("subtotal")
    subtotal = _money_field(raw, "subtotal") if subtotal is not None else money(qty * unit_price)

    return HeldOrderItem(
        product_id=raw.get("product_id"),
        product_name=name,
        product_sku=raw.get("product_sku") or raw.get("sku"),
        quantity=qty,
        unit_price=unit_price,
        cost_price=_money_field(raw, "cost_price") if raw.get("cost_price") is not None else None,
        subtotal=subtotal,
        is_taxable=bool(raw.get("is_taxable", True)),
        tax_rate=to_decimal(raw.get("tax_rate", 0), "tax_rate"),
        tax_amount=_money_field(raw, "tax_amount"),
        discount_type=raw.get("discount_type"),
        discount_value=_money_field(raw, "discount_value") if raw.get("discount_value") is not None else None,
        discount_amount=_money_field(raw, "discount_amount"),
        discount_reason=raw.get("discount_reason"),
        meta=raw.get("metadata"),
        line_order=raw.get("line_order", index),
    )


def create_hold(payload: dict, *, user_id: int) -> HeldOrder:
    """
    Park a cart. Header and all items are written in one transaction.

    Holding has no stock or payment side effects.
    """
    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise HoldError("At least one item is required")

    built = [_build_item(raw, i) for i, raw in enumerate(items)]

    expires_at = None
    if payload.get("expires_at"):
        try:
            expires_at = parse_iso_datetime(payload["expires_at"])
        except (TypeError, ValueError):
            raise HoldError("expires_at must be an ISO-8601 datetime")
    if expires_at is None:
        hours = current_app.config.get("HOLD_DEFAULT_EXPIRY_HOURS", 24)
        expires_at = utcnow() + timedelta(hours=hours)

    subtotal = payload.get("subtotal")
    hold = HeldOrder(
        hold_number=next_document_number("HOLD"),
        user_id=user_id,
        terminal_id=payload.get("terminal_id"),
        customer_id=payload.get("customer_id"),
        customer_name=payload.get("customer_name"),
        subtotal=_money_field(payload, "subtotal") if subtotal is not None else money(sum(i.subtotal for i in built)),
        tax_amount=_money_field(payload, "tax_amount"),
        discount_amount=_money_field(payload, "discount_amount"),
        total_amount=_money_field(payload, "total_amount"),
        hold_reason=payload.get("hold_reason"),
        notes=payload.get("notes"),
        meta=payload.get("metadata"),
        status="ACTIVE",
        expires_at=expires_at,
    )
    if payload.get("total_amount") is None:
        hold.total_amount = money(hold.subtotal + hold.tax_amount - hold.discount_amount)
    hold.items = built

    db.session.add(hold)
    db.session.commit()
    logger.info("Hold %s created by user %s with %d items", hold.hold_number, user_id, len(built))
    return hold


def list_active_holds(user_id: int) -> list[HeldOrder]:
    """Caller's ACTIVE, unexpired holds, newest first."""
    now = utcnow()
    return (
        db.session.query(HeldOrder)
        .filter(
            HeldOrder.user_id == user_id,
            HeldOrder.status == "ACTIVE",
            db.or_(HeldOrder.expires_at.is_(None), HeldOrder.expires_at > now),
        )
        .order_by(HeldOrder.created_at.desc(), HeldOrder.id.desc())
        .all()
    )


def _is_expired(hold: HeldOrder) -> bool:
    return hold.status == "EXPIRED" or (
        hold.expires_at is not None and hold.expires_at <= utcnow()
    )


def get_hold_for_user(hold_id: int, user_id: int) -> HeldOrder:
    """
    Load a hold the caller owns and may still act on.

    Raises:
        NotFoundError: no such hold
        HoldForbiddenError: someone else's hold
        HoldExpiredError: past expiry (the row is marked EXPIRED first)
        HoldStateError: already resumed or cancelled
    """
    hold = db.session.query(HeldOrder).filter_by(id=hold_id).first()
    if not hold:
        raise NotFoundError("Hold order not found")
    if hold.user_id != user_id:
        raise HoldForbiddenError("Forbidden - not your hold order")
    if _is_expired(hold):
        if hold.status == "ACTIVE":
            hold.status = "EXPIRED"
            db.session.commit()
        raise HoldExpiredError("Hold order has expired")
    if hold.status != "ACTIVE":
        raise HoldStateError(f"Hold order is {hold.status.lower()}")
    return hold


def resume_hold(hold_id: int, user_id: int) -> HeldOrder:
    hold = get_hold_for_user(hold_id, user_id)
    hold.status = "RESUMED"
    hold.resumed_at = utcnow()
    db.session.commit()
    logger.info("Hold %s resumed by user %s", hold.hold_number, user_id)
    return hold


def cancel_hold(hold_id: int, user_id: int) -> HeldOrder:
    hold = db.session.query(HeldOrder).filter_by(id=hold_id).first()
    if not hold:
        raise NotFoundError("Hold order not found")
    if hold.user_id != user_id:
        raise HoldForbiddenError("Forbidden - not your hold order")
    if hold.status != "ACTIVE":
        raise HoldStateError(f"Hold order is {hold.status.lower()}")
    hold.status = "CANCELLED"
    db.session.commit()
    logger.info("Hold %s cancelled by user %s", hold.hold_number, user_id)
    return hold


def expire_overdue_holds() -> int:
    """Mark ACTIVE holds past expiry as EXPIRED. Returns the count."""
    now = utcnow()
    count = (
        db.session.query(HeldOrder)
        .filter(
            HeldOrder.status == "ACTIVE",
            HeldOrder.expires_at.isnot(None),
            HeldOrder.expires_at <= now,
        )
        .update({HeldOrder.status: "EXPIRED"}, synchronize_session=False)
    )
    db.session.commit()
    if count:
        logger.info("Expired %d held orders", count)
    return count
