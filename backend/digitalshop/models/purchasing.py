from __future__ import annotations

from ..extensions import db
from digitalshop.formatting import to_money, to_qty
from digitalshop.time_utils import to_iso_date, to_utc_z, utcnow


class Supplier(db.Model):
    """Supplier master data. Phone and email are unique among active suppliers."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.Text, nullable=True)

    # e.g. NET30, NET60, COD
    payment_terms = db.Column(db.String(32), nullable=False, default="NET30")
    balance = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "payment_terms": self.payment_terms,
            "balance": to_money(self.balance),
            "is_active": self.is_active,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseOrder(db.Model):
    """
    Purchase order sent to a supplier.

    LIFECYCLE:
    1. DRAFT: being prepared
    2. SENT: passed to the supplier (optional step)
    3. APPROVED: goods may be received against it
    4. PARTIAL / RECEIVED: set by finalized goods receipts
    5. CANCELLED: abandoned before any goods arrived

    total_amount = sum(ordered_quantity * unit_price) over the items.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    order_date = db.Column(db.Date, nullable=False)
    expected_delivery_date = db.Column(db.Date, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    payment_terms = db.Column(db.String(50), nullable=True)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_id])
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "order_date": to_iso_date(self.order_date),
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "status": self.status,
            "payment_terms": self.payment_terms,
            "total_amount": to_money(self.total_amount),
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by.full_name if self.created_by else None,
            "approved_by_id": self.approved_by_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "sent_date": to_utc_z(self.sent_date) if self.sent_date else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    ordered_quantity = db.Column(db.Numeric(15, 4), nullable=False)
    # Bumped by each finalized goods receipt line that points here
    received_quantity = db.Column(db.Numeric(15, 4), nullable=False, default=0)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    total_price = db.Column(db.Numeric(15, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    @property
    def outstanding_quantity(self):
        left = (self.ordered_quantity or 0) - (self.received_quantity or 0)
        return left if left > 0 else 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.product.sku if self.product else None,
            "ordered_quantity": to_qty(self.ordered_quantity),
            "received_quantity": to_qty(self.received_quantity),
            "outstanding_quantity": to_qty(self.outstanding_quantity),
            "unit_price": to_money(self.unit_price),
            "total_price": to_money(self.total_price),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class GoodsReceipt(db.Model):
    """
    Goods receipt (receiving document).

    LIFECYCLE:
    1. DRAFT: lines may still be edited
    2. COMPLETED: batches created, movements posted, costs updated (immutable)
    3. CANCELLED: abandoned draft (immutable)

    Inventory is only touched on DRAFT -> COMPLETED.
    """
    __tablename__ = "goods_receipts"
    __table_args__ = (
        db.Index("ix_goods_receipts_status_date", "status", "received_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(32), nullable=False, unique=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    received_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)
    total_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("goods_receipts", lazy=True))
    purchase_order = db.relationship("PurchaseOrder", backref=db.backref("goods_receipts", lazy=True))
    received_by = db.relationship("User")
    items = db.relationship(
        "GoodsReceiptItem",
        backref="goods_receipt",
        lazy=True,
        order_by="GoodsReceiptItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "purchase_order_id": self.purchase_order_id,
            "po_number": self.purchase_order.order_number if self.purchase_order else None,
            "received_date": to_utc_z(self.received_date),
            "received_by_id": self.received_by_id,
            "received_by_name": self.received_by.full_name if self.received_by else None,
            "status": self.status,
            "total_value": to_money(self.total_value),
            "notes": self.notes,
            "item_count": len(self.items),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class GoodsReceiptItem(db.Model):
    __tablename__ = "goods_receipt_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    goods_receipt_id = db.Column(db.Integer, db.ForeignKey("goods_receipts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    purchase_order_item_id = db.Column(db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=True)

    received_quantity = db.Column(db.Numeric(15, 4), nullable=False)
    cost_price = db.Column(db.Numeric(15, 2), nullable=False)
    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    # SHORT, OVER, DAMAGED, WRONG_ITEM
    discrepancy_type = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "goods_receipt_id": self.goods_receipt_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "purchase_order_item_id": self.purchase_order_item_id,
            "received_quantity": to_qty(self.received_quantity),
            "cost_price": to_money(self.cost_price),
            "line_total": to_money((self.received_quantity or 0) * (self.cost_price or 0)),
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "discrepancy_type": self.discrepancy_type,
            "notes": self.notes,
        }
