# Overview: System settings singleton, table statistics and the transactional reset.

"""
System Service

RESET is destructive and admin-only. It wipes every TRANSACTIONAL table in
one transaction and keeps MASTER data (users, products, customers,
suppliers, categories, settings, role permissions). Product on-hand and
customer/supplier balances are zeroed because they are derived from the
rows that were removed.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..cache import CacheKeys, cache_aside, clear_all, invalidate_settings, settings_cache
from ..extensions import db
from ..models import (
    Customer,
    DocumentSequence,
    Expense,
    ExpenseCategory,
    GoodsReceipt,
    GoodsReceiptItem,
    HeldOrder,
    HeldOrderItem,
    InventoryBatch,
    Invoice,
    InvoicePayment,
    Product,
    PurchaseOrder,
    PurchaseOrderItem,
    Refund,
    RefundItem,
    RolePermission,
    Sale,
    SaleItem,
    StockMovement,
    Supplier,
    SystemSettings,
    User,
)
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

logger = logging.getLogger(__name__)

RESET_CONFIRM_TEXT = "RESET ALL TRANSACTIONS"
RESET_REASON_MIN_LENGTH = 10

MASTER_MODELS = (User, RolePermission, Product, Customer, Supplier, ExpenseCategory, SystemSettings)

# Children before parents so deletes never trip foreign keys.
TRANSACTIONAL_MODELS = (
    RefundItem,
    Refund,
    InvoicePayment,
    Invoice,
    SaleItem,
    Sale,
    HeldOrderItem,
    HeldOrder,
    GoodsReceiptItem,
    GoodsReceipt,
    PurchaseOrderItem,
    PurchaseOrder,
    StockMovement,
    InventoryBatch,
    Expense,
    DocumentSequence,
)

SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={
        "business_name", "business_phone", "business_email", "business_address",
        "currency_code", "currency_symbol", "date_format", "time_format", "timezone",
        "tax_enabled", "tax_name", "tax_number", "default_tax_rate", "tax_inclusive",
        "receipt_header_text", "receipt_footer_text", "receipt_show_tax_breakdown",
        "receipt_auto_print", "receipt_paper_width",
        "low_stock_alerts_enabled", "low_stock_threshold",
    },
    required_on_create=set(),
    non_negative_fields={"default_tax_rate", "receipt_paper_width", "low_stock_threshold"},
)


class SystemResetError(ValidationError):
    pass


def ensure_settings() -> SystemSettings:
    """Return the settings row, creating it with defaults when missing."""
    settings = db.session.query(SystemSettings).order_by(SystemSettings.id.asc()).first()
    if settings is None:
        settings = SystemSettings()
        db.session.add(settings)
        db.session.commit()
        logger.info("System settings created with defaults")
    return settings


def get_settings() -> dict:
    return cache_aside(settings_cache, CacheKeys.SYSTEM_SETTINGS, lambda: ensure_settings().to_dict())


def update_settings(payload: dict, *, user_id: int) -> dict:
    patch = validate_payload(model=SystemSettings, payload=payload, policy=SETTINGS_POLICY, partial=True)
    if not patch:
        raise ValidationError("No valid fields to update")
    if "currency_code" in patch:
        patch["currency_code"] = patch["currency_code"].upper()

    settings = ensure_settings()
    for key, value in patch.items():
        setattr(settings, key, value)
    settings.updated_by_id = user_id
    db.session.commit()
    invalidate_settings()
    logger.info("System settings updated by user %s: %s", user_id, sorted(patch.keys()))
    return settings.to_dict()


def _count(model) -> int:
    return db.session.query(func.count()).select_from(model).scalar() or 0


def table_counts(models) -> dict[str, int]:
    return {model.__tablename__: _count(model) for model in models}


def database_stats() -> dict:
    master = table_counts(MASTER_MODELS)
    transactional = table_counts(TRANSACTIONAL_MODELS)
    return {
        "master_data": master,
        "transactional_data": transactional,
        "total_records": sum(master.values()) + sum(transactional.values()),
    }


def reset_preview() -> dict:
    transactional = table_counts(TRANSACTIONAL_MODELS)
    return {
        "will_be_cleared": {
            "transactional_data": transactional,
            "total_records": sum(transactional.values()),
        },
        "will_be_preserved": {
            "master_data": table_counts(MASTER_MODELS),
        },
        "will_be_zeroed": ["products.quantity_on_hand", "customers.balance", "suppliers.balance"],
    }


def reset_transactions(confirm_text: str | None, reason: str | None, *, user_id: int) -> dict:
    """
    Delete all transactional rows and zero derived balances.

    Raises:
        SystemResetError: wrong confirmation phrase or reason too short
    """
    if confirm_text != RESET_CONFIRM_TEXT:
        raise SystemResetError("Invalid confirmation phrase")
    reason = (reason or "").strip()
    if len(reason) < RESET_REASON_MIN_LENGTH:
        raise SystemResetError("Please provide a detailed reason (minimum 10 characters)")

    logger.warning("System reset initiated by user %s: %s", user_id, reason)

    cleared = table_counts(TRANSACTIONAL_MODELS)
    try:
        for model in TRANSACTIONAL_MODELS:
            db.session.query(model).delete(synchronize_session=False)
        db.session.query(Product).update(
            {Product.quantity_on_hand: 0, Product.average_cost: Product.cost_price},
            synchronize_session=False,
        )
        db.session.query(Customer).update({Customer.balance: 0}, synchronize_session=False)
        db.session.query(Supplier).update({Supplier.balance: 0}, synchronize_session=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    finally:
        db.session.expire_all()

    clear_all()
    logger.info("System reset completed by user %s: %s rows removed", user_id, sum(cleared.values()))
    return {
        "message": "All transactional data has been cleared. Master data preserved.",
        "cleared": cleared,
    }
