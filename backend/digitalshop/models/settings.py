from __future__ import annotations

from ..extensions import db
from digitalshop.formatting import to_rate
from digitalshop.time_utils import to_utc_z, utcnow


class SystemSettings(db.Model):
    """
    Business-wide settings (single row).

    Created with defaults on first read; see settings_service.get_settings.
    """
    __tablename__ = "system_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Business
    business_name = db.Column(db.String(255), nullable=False, default="DigitalShop")
    business_phone = db.Column(db.String(50), nullable=True)
    business_email = db.Column(db.String(255), nullable=True)
    business_address = db.Column(db.Text, nullable=True)

    # Locale
    currency_code = db.Column(db.String(3), nullable=False, default="UGX")
    currency_symbol = db.Column(db.String(8), nullable=False, default="UGX")
    date_format = db.Column(db.String(20), nullable=False, default="YYYY-MM-DD")
    time_format = db.Column(db.String(8), nullable=False, default="24h")
    timezone = db.Column(db.String(64), nullable=False, default="Africa/Kampala")

    # Tax
    tax_enabled = db.Column(db.Boolean, nullable=False, default=True)
    tax_name = db.Column(db.String(32), nullable=False, default="VAT")
    tax_number = db.Column(db.String(64), nullable=True)
    default_tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=18)
    tax_inclusive = db.Column(db.Boolean, nullable=False, default=False)

    # Receipt
    receipt_header_text = db.Column(db.Text, nullable=True)
    receipt_footer_text = db.Column(db.Text, nullable=True, default="Thank you for your business!")
    receipt_show_tax_breakdown = db.Column(db.Boolean, nullable=False, default=True)
    receipt_auto_print = db.Column(db.Boolean, nullable=False, default=False)
    receipt_paper_width = db.Column(db.Integer, nullable=False, default=80)

    # Inventory alerts
    low_stock_alerts_enabled = db.Column(db.Boolean, nullable=False, default=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    updated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_name": self.business_name,
            "business_phone": self.business_phone,
            "business_email": self.business_email,
            "business_address": self.business_address,
            "currency_code": self.currency_code,
            "currency_symbol": self.currency_symbol,
            "date_format": self.date_format,
            "time_format": self.time_format,
            "timezone": self.timezone,
            "tax_enabled": self.tax_enabled,
            "tax_name": self.tax_name,
            "tax_number": self.tax_number,
            "default_tax_rate": to_rate(self.default_tax_rate),
            "tax_inclusive": self.tax_inclusive,
            "receipt_header_text": self.receipt_header_text,
            "receipt_footer_text": self.receipt_footer_text,
            "receipt_show_tax_breakdown": self.receipt_show_tax_breakdown,
            "receipt_auto_print": self.receipt_auto_print,
            "receipt_paper_width": self.receipt_paper_width,
            "low_stock_alerts_enabled": self.low_stock_alerts_enabled,
            "low_stock_threshold": self.low_stock_threshold,
            "updated_by_id": self.updated_by_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
