# backend/digitalshop/services/products_service.py
"""
Products Service

Identifier uniqueness (sku, barcode, name) is enforced among ACTIVE products
only, with messages the POS shows verbatim. quantity_on_hand is never set
here; it is derived from batches by inventory_service.
"""
from __future__ import annotations

import logging

from sqlalchemy import func, or_

from ..cache import CacheKeys, cache_aside, data_cache, invalidate_products
from ..extensions import db
from ..models import Product
from ..responses import paginate
from ..validation import ConflictError, NotFoundError, ValidationError
from .document_service import next_document_number

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "sku", "barcode", "name", "description", "category",
    "unit_of_measure", "conversion_factor",
    "cost_price", "selling_price", "costing_method", "average_cost", "last_cost",
    "pricing_formula", "auto_update_price",
    "reorder_level", "track_expiry", "is_taxable", "tax_rate", "is_active",
}

COSTING_METHODS = {"FIFO", "AVCO", "STANDARD"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _active_products(exclude_id: int | None = None):
    query = db.session.query(Product).filter(Product.is_active.is_(True))
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query


def check_product_uniqueness(patch: dict, *, exclude_id: int | None = None) -> None:
    """
    Reject sku / barcode / name collisions with another ACTIVE product.

    Name comparison is case-insensitive; sku and barcode are exact.
    """
    sku = patch.get("sku")
    if sku:
        clash = _active_products(exclude_id).filter(Product.sku == sku).first()
        if clash:
            raise ConflictError(
                f'A product with SKU "{sku}" already exists: "{clash.name}". '
                f'Please use a different SKU.'
            )

    barcode = patch.get("barcode")
    if barcode:
        clash = _active_products(exclude_id).filter(Product.barcode == barcode).first()
        if clash:
            raise ConflictError(
                f'A product with barcode "{barcode}" already exists: "{clash.name}". '
                f'Please use a different barcode.'
            )

    name = patch.get("name")
    if name:
        clash = (
            _active_products(exclude_id)
            .filter(func.lower(Product.name) == name.strip().lower())
            .first()
        )
        if clash:
            raise ConflictError(
                f'A product with name "{name}" already exists (SKU: {clash.sku}). '
                f'Please use a different name.'
            )


def _check_costing_method(patch: dict) -> None:
    method = patch.get("costing_method")
    if method is not None:
        method = method.upper()
        if method not in COSTING_METHODS:
            raise ValidationError(f"costing_method must be one of: {', '.join(sorted(COSTING_METHODS))}")
        patch["costing_method"] = method


def get_product(product_id: int, *, include_inactive: bool = True) -> Product:
    query = db.session.query(Product).filter(Product.id == product_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    product = query.first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def get_product_by_sku(sku: str) -> Product:
    product = _active_products().filter(Product.sku == sku).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def get_product_by_barcode(barcode: str) -> Product:
    product = _active_products().filter(Product.barcode == barcode).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def list_products(
    *,
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    category: str | None = None,
    include_inactive: bool = False,
) -> dict:
    """
    Product listing with optional pagination.

    Args:
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
        search: matches name, sku or barcode (case-insensitive)
    """
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    if search:
        term = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(Product.name).like(term),
                func.lower(Product.sku).like(term),
                func.lower(Product.barcode).like(term),
            )
        )
    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda p: p.to_dict())


def search_products(term: str, limit: int = 20) -> list[dict]:
    """POS quick search (cached per lowercased term)."""
    term = (term or "").strip()
    if not term:
        return []

    def _fetch():
        like = f"%{term.lower()}%"
        rows = (
            _active_products()
            .filter(
                or_(
                    func.lower(Product.name).like(like),
                    func.lower(Product.sku).like(like),
                    Product.barcode == term,
                )
            )
            .order_by(Product.name.asc())
            .limit(limit)
            .all()
        )
        return [p.to_dict() for p in rows]

    return cache_aside(data_cache, CacheKeys.product_search(term), _fetch)


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.is_active.is_(True), Product.category.isnot(None))
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [row[0] for row in rows]


def low_stock_products() -> list[Product]:
    return (
        _active_products()
        .filter(Product.quantity_on_hand <= Product.reorder_level)
        .order_by(Product.quantity_on_hand.asc(), Product.name.asc())
        .all()
    )


def create_product(*, patch: dict) -> Product:
    """
    Create product from a validated patch dict.

    A missing or blank sku is replaced with the next PRD-##### number.

    Raises:
        ConflictError: sku / barcode / name already used by an active product
    """
    sku = (patch.get("sku") or "").strip()
    if not sku:
        patch["sku"] = next_document_number("PRODUCT")

    _check_costing_method(patch)
    check_product_uniqueness(patch)

    p = Product()
    apply_product_patch(p, patch)
    if p.last_cost is None and patch.get("cost_price") is not None:
        p.last_cost = patch["cost_price"]
    if p.average_cost is None and patch.get("cost_price") is not None:
        p.average_cost = patch["cost_price"]

    db.session.add(p)
    db.session.commit()
    invalidate_products()
    logger.info("Product created: id=%s sku=%s", p.id, p.sku)
    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    p = get_product(product_id)

    if "sku" in patch and not (patch["sku"] or "").strip():
        raise ValidationError("sku cannot be blank")

    _check_costing_method(patch)
    if patch.get("is_active", p.is_active):
        # a reactivated row must not collide with whatever took its identifiers
        current = {"sku": p.sku, "barcode": p.barcode, "name": p.name}
        check_product_uniqueness({**current, **patch}, exclude_id=p.id)

    apply_product_patch(p, patch)
    db.session.commit()
    invalidate_products()
    logger.info("Product updated: id=%s fields=%s", p.id, sorted(patch.keys()))
    return p


def delete_product(*, product_id: int) -> Product:
    """Soft delete: the row (and its history) stays, is_active becomes False."""
    p = get_product(product_id)
    p.is_active = False
    db.session.commit()
    invalidate_products()
    logger.info("Product deactivated: id=%s sku=%s", p.id, p.sku)
    return p
