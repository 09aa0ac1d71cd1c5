from __future__ import annotations

from ..extensions import db
from digitalshop.formatting import to_money, to_qty, to_rate
from digitalshop.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Completed POS sale.

    LIFECYCLE: COMPLETED -> VOID | REFUNDED. Both end states are terminal.
    profit excludes tax: (subtotal - discounts) - total_cost.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_date", "status", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "SALE-2025-0001")
    sale_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    profit = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    profit_margin = db.Column(db.Numeric(7, 4), nullable=False, default=0)

    # CASH, CARD, MOBILE_MONEY, BANK_TRANSFER, CREDIT
    payment_method = db.Column(db.String(20), nullable=False, default="CASH")
    amount_paid = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    change_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    notes = db.Column(db.Text, nullable=True)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer")
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    voided_by = db.relationship("User", foreign_keys=[voided_by_id])

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "sale_date": to_utc_z(self.sale_date),
            "subtotal": to_money(self.subtotal),
            "tax_amount": to_money(self.tax_amount),
            "discount_amount": to_money(self.discount_amount),
            "total_amount": to_money(self.total_amount),
            "total_cost": to_money(self.total_cost),
            "profit": to_money(self.profit),
            "profit_margin": to_rate(self.profit_margin),
            "payment_method": self.payment_method,
            "amount_paid": to_money(self.amount_paid),
            "change_amount": to_money(self.change_amount),
            "status": self.status,
            "notes": self.notes,
            "cashier_id": self.cashier_id,
            "cashier_name": self.cashier.full_name if self.cashier else None,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by_id": self.voided_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
            data["refunds"] = [refund.to_dict() for refund in self.refunds]
        return data


class SaleItem(db.Model):
    """
    One line on a sale.

    A PRODUCT line that drew from several batches is stored as one row per
    batch allocation so void/refund can restore stock to the right batch.
    CUSTOM/SERVICE lines have no product and never touch stock.
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    # PRODUCT, SERVICE, CUSTOM
    item_type = db.Column(db.String(16), nullable=False, default="PRODUCT")
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    batch_id = db.Column(db.Integer, db.ForeignKey("inventory_batches.id"), nullable=True)

    quantity = db.Column(db.Numeric(15, 4), nullable=False)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    unit_cost = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(15, 2), nullable=False)
    profit = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship(
        "Sale",
        backref=db.backref("items", lazy=True, order_by="SaleItem.id"),
    )
    product = db.relationship("Product")
    batch = db.relationship("InventoryBatch")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_type": self.item_type,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "batch_id": self.batch_id,
            "batch_number": self.batch.batch_number if self.batch else None,
            "quantity": to_qty(self.quantity),
            "unit_price": to_money(self.unit_price),
            "unit_cost": to_money(self.unit_cost),
            "discount_amount": to_money(self.discount_amount),
            "tax_amount": to_money(self.tax_amount),
            "total_price": to_money(self.total_price),
            "profit": to_money(self.profit),
        }


class Refund(db.Model):
    """Refund against a completed sale (full or partial)."""
    __tablename__ = "refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_number = db.Column(db.String(32), nullable=False, unique=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    # FULL or PARTIAL
    refund_type = db.Column(db.String(16), nullable=False, default="PARTIAL")
    reason = db.Column(db.Text, nullable=False)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    return_to_inventory = db.Column(db.Boolean, nullable=False, default=True)
    notes = db.Column(db.Text, nullable=True)

    processed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    sale = db.relationship("Sale", backref=db.backref("refunds", lazy=True, order_by="Refund.id"))
    processed_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "refund_number": self.refund_number,
            "sale_id": self.sale_id,
            "sale_number": self.sale.sale_number if self.sale else None,
            "refund_type": self.refund_type,
            "reason": self.reason,
            "total_amount": to_money(self.total_amount),
            "return_to_inventory": self.return_to_inventory,
            "notes": self.notes,
            "processed_by_id": self.processed_by_id,
            "processed_by_name": self.processed_by.full_name if self.processed_by else None,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class RefundItem(db.Model):
    __tablename__ = "refund_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.Integer, db.ForeignKey("refunds.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    quantity = db.Column(db.Numeric(15, 4), nullable=False)
    amount = db.Column(db.Numeric(15, 2), nullable=False)

    refund = db.relationship("Refund", backref=db.backref("items", lazy=True, order_by="RefundItem.id"))
    sale_item = db.relationship("SaleItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "refund_id": self.refund_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "product_name": self.sale_item.product_name if self.sale_item else None,
            "quantity": to_qty(self.quantity),
            "amount": to_money(self.amount),
        }
