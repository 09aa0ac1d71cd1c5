# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories (one per functional module) for UI display."""
    SALES = "sales"
    PRODUCTS = "products"
    INVENTORY = "inventory"
    CUSTOMERS = "customers"
    SUPPLIERS = "suppliers"
    PURCHASES = "purchases"
    INVOICES = "invoices"
    EXPENSES = "expenses"
    REPORTS = "reports"
    USERS = "users"
    SETTINGS = "settings"
    POS = "pos"
    DISCOUNTS = "discounts"
