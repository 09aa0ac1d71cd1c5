# Overview: Supplier master data and supplier history.

from __future__ import annotations

import logging

from sqlalchemy import func, or_

from ..extensions import db
from ..models import GoodsReceipt, Supplier
from ..responses import paginate
from ..validation import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

SUPPLIER_MUTABLE_FIELDS = {
    "name", "contact_person", "email", "phone", "address",
    "payment_terms", "is_active", "notes",
}


def _active_suppliers(exclude_id: int | None = None):
    query = db.session.query(Supplier).filter(Supplier.is_active.is_(True))
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    return query


def check_supplier_uniqueness(patch: dict, *, exclude_id: int | None = None) -> None:
    """Phone and email are unique among ACTIVE suppliers."""
    phone = patch.get("phone")
    if phone:
        clash = _active_suppliers(exclude_id).filter(Supplier.phone == phone).first()
        if clash:
            raise ConflictError(f'A supplier with phone number "{phone}" already exists: {clash.name}')

    email = patch.get("email")
    if email:
        clash = (
            _active_suppliers(exclude_id)
            .filter(func.lower(Supplier.email) == email.strip().lower())
            .first()
        )
        if clash:
            raise ConflictError(f'A supplier with email "{email}" already exists: {clash.name}')


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id).first()
    if not supplier:
        raise NotFoundError("Supplier not found")
    return supplier


def list_suppliers(*, page: int | None = None, per_page: int | None = None,
                   include_inactive: bool = False) -> dict:
    query = db.session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    query = query.order_by(Supplier.name.asc(), Supplier.id.asc())
    return paginate(query, page=page, per_page=per_page, serializer=lambda s: s.to_dict())


def search_suppliers(term: str, limit: int = 20) -> list[Supplier]:
    term = (term or "").strip()
    if not term:
        return []
    like = f"%{term.lower()}%"
    return (
        _active_suppliers()
        .filter(
            or_(
                func.lower(Supplier.name).like(like),
                func.lower(Supplier.contact_person).like(like),
                func.lower(Supplier.email).like(like),
                Supplier.phone.like(f"%{term}%"),
            )
        )
        .order_by(Supplier.name.asc())
        .limit(limit)
        .all()
    )


def suppliers_with_payables() -> list[Supplier]:
    return (
        _active_suppliers()
        .filter(Supplier.balance > 0)
        .order_by(Supplier.balance.desc(), Supplier.name.asc())
        .all()
    )


def create_supplier(*, patch: dict) -> Supplier:
    check_supplier_uniqueness(patch)
    supplier = Supplier()
    for key, value in patch.items():
        if key in SUPPLIER_MUTABLE_FIELDS:
            setattr(supplier, key, value)
    db.session.add(supplier)
    db.session.commit()
    logger.info("Supplier created: id=%s name=%s", supplier.id, supplier.name)
    return supplier


def update_supplier(*, supplier_id: int, patch: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    if patch.get("is_active", supplier.is_active):
        current = {"phone": supplier.phone, "email": supplier.email}
        check_supplier_uniqueness({**current, **patch}, exclude_id=supplier.id)
    for key, value in patch.items():
        if key in SUPPLIER_MUTABLE_FIELDS:
            setattr(supplier, key, value)
    db.session.commit()
    logger.info("Supplier updated: id=%s fields=%s", supplier.id, sorted(patch.keys()))
    return supplier


def delete_supplier(*, supplier_id: int) -> Supplier:
    supplier = get_supplier(supplier_id)
    supplier.is_active = False
    db.session.commit()
    logger.info("Supplier deactivated: id=%s", supplier.id)
    return supplier


def supplier_transactions(supplier_id: int) -> list[GoodsReceipt]:
    get_supplier(supplier_id)
    return (
        db.session.query(GoodsReceipt)
        .filter(GoodsReceipt.supplier_id == supplier_id)
        .order_by(GoodsReceipt.received_date.desc(), GoodsReceipt.id.desc())
        .all()
    )
