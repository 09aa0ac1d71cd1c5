from __future__ import annotations

from ..extensions import db
from digitalshop.formatting import to_money, to_qty, to_rate
from digitalshop.time_utils import to_utc_z, utcnow


class HeldOrder(db.Model):
    """
    A parked POS cart.

    Holds are per-user: only the creator may list, resume or cancel them.
    Holding never touches stock or payments.

    LIFECYCLE: ACTIVE -> RESUMED | CANCELLED | EXPIRED.
    """
    __tablename__ = "held_orders"
    __table_args__ = (
        db.Index("ix_held_orders_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    hold_number = db.Column(db.String(32), nullable=False, unique=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    terminal_id = db.Column(db.String(64), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    hold_reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    # "metadata" is reserved on declarative classes
    meta = db.Column("metadata", db.JSON, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    resumed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "HeldOrderItem",
        backref="held_order",
        lazy=True,
        order_by="HeldOrderItem.line_order",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "hold_number": self.hold_number,
            "user_id": self.user_id,
            "terminal_id": self.terminal_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "subtotal": to_money(self.subtotal),
            "tax_amount": to_money(self.tax_amount),
            "discount_amount": to_money(self.discount_amount),
            "total_amount": to_money(self.total_amount),
            "hold_reason": self.hold_reason,
            "notes": self.notes,
            "metadata": self.meta,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "resumed_at": to_utc_z(self.resumed_at) if self.resumed_at else None,
            "item_count": len(self.items),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class HeldOrderItem(db.Model):
    __tablename__ = "held_order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    hold_id = db.Column(db.Integer, db.ForeignKey("held_orders.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Numeric(15, 4), nullable=False)
    unit_price = db.Column(db.Numeric(15, 2), nullable=False)
    cost_price = db.Column(db.Numeric(15, 2), nullable=True)
    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    is_taxable = db.Column(db.Boolean, nullable=False, default=True)
    tax_rate = db.Column(db.Numeric(5, 4), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    # PERCENTAGE or FIXED
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Numeric(15, 2), nullable=True)
    discount_amount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_reason = db.Column(db.String(255), nullable=True)

    meta = db.Column("metadata", db.JSON, nullable=True)
    line_order = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "hold_id": self.hold_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": to_qty(self.quantity),
            "unit_price": to_money(self.unit_price),
            "cost_price": to_money(self.cost_price),
            "subtotal": to_money(self.subtotal),
            "is_taxable": self.is_taxable,
            "tax_rate": to_rate(self.tax_rate),
            "tax_amount": to_money(self.tax_amount),
            "discount_type": self.discount_type,
            "discount_value": to_money(self.discount_value),
            "discount_amount": to_money(self.discount_amount),
            "discount_reason": self.discount_reason,
            "metadata": self.meta,
            "line_order": self.line_order,
        }
