from __future__ import annotations

from ..extensions import db
from digitalshop.formatting import to_money, to_qty, to_rate
from digitalshop.time_utils import to_iso_date, to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data.

    quantity_on_hand is DERIVED: it always equals the sum of remaining_quantity
    over ACTIVE batches (see inventory_service.sync_quantity_on_hand). It is not
    client-writable.

    Uniqueness of sku / barcode / name is enforced among ACTIVE products only,
    in products_service, so a soft-deleted product frees its identifiers.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, index=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True, index=True)

    unit_of_measure = db.Column(db.String(20), nullable=False, default="PCS")
    conversion_factor = db.Column(db.Numeric(15, 4), nullable=False, default=1)

    cost_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    selling_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    # FIFO, AVCO or STANDARD
    costing_method = db.Column(db.String(16), nullable=False, default="FIFO")
    average_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    last_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    # e.g. "cost * 1.25"; consumed by the frontend price calculator
    pricing_formula = db.Column(db.Text, nullable=True)
    auto_update_price = db.Column(db.Boolean, nullable=False, default=False)

    quantity_on_hand = db.Column(db.Numeric(15, 4), nullable=False, default=0)
    reorder_level = db.Column(db.Numeric(15, 4), nullable=False, default=0)

    track_expiry = db.Column(db.Boolean, nullable=False, default=False)
    is_taxable = db.Column(db.Boolean, nullable=False, default=True)
    tax_rate = db.Column(db.Numeric(5, 4), nullable=False, default=0.06)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit_of_measure": self.unit_of_measure,
            "conversion_factor": to_qty(self.conversion_factor),
            "cost_price": to_money(self.cost_price),
            "selling_price": to_money(self.selling_price),
            "costing_method": self.costing_method,
            "average_cost": to_money(self.average_cost),
            "last_cost": to_money(self.last_cost),
            "pricing_formula": self.pricing_formula,
            "auto_update_price": self.auto_update_price,
            "quantity_on_hand": to_qty(self.quantity_on_hand),
            "reorder_level": to_qty(self.reorder_level),
            "track_expiry": self.track_expiry,
            "is_taxable": self.is_taxable,
            "tax_rate": to_rate(self.tax_rate),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryBatch(db.Model):
    """
    A received lot of a product with its own cost and (optional) expiry.

    LIFECYCLE: ACTIVE -> DEPLETED (remaining hits 0) | EXPIRED | QUARANTINED.
    Restoring stock to a DEPLETED batch reactivates it.
    INVARIANT: 0 <= remaining_quantity <= quantity.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        # FEFO / FIFO scans
        db.Index("ix_batches_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_number = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(15, 4), nullable=False)
    remaining_quantity = db.Column(db.Numeric(15, 4), nullable=False)
    cost_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    expiry_date = db.Column(db.Date, nullable=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    # GOODS_RECEIPT, ADJUSTMENT, OPENING
    source_type = db.Column(db.String(32), nullable=True)
    source_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": to_qty(self.quantity),
            "remaining_quantity": to_qty(self.remaining_quantity),
            "cost_price": to_money(self.cost_price),
            "expiry_date": to_iso_date(self.expiry_date),
            "received_date": to_utc_z(self.received_date),
            "status": self.status,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    quantity is SIGNED: positive moves stock in, negative moves it out.
    Rows are never updated or deleted outside a full system reset.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    movement_number = db.Column(db.String(32), nullable=False, unique=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("inventory_batches.id"), nullable=True, index=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(db.Numeric(15, 4), nullable=False)
    unit_cost = db.Column(db.Numeric(15, 2), nullable=True)

    # SALE, GOODS_RECEIPT, MANUAL_ADJUSTMENT, REFUND, VOID
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")
    batch = db.relationship("InventoryBatch")
    created_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_number": self.movement_number,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "batch_id": self.batch_id,
            "batch_number": self.batch.batch_number if self.batch else None,
            "movement_type": self.movement_type,
            "quantity": to_qty(self.quantity),
            "unit_cost": to_money(self.unit_cost),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by.full_name if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }
