# Overview: All permission definitions and the default role -> permission mapping.
# Each permission is defined as: (key, name, description, category)

from .categories import PermissionCategory as C


# -- ROLES --

# Highest privilege first.
ROLES = ("ADMIN", "MANAGER", "CASHIER", "STAFF")
ROLE_HIERARCHY = {role: len(ROLES) - index for index, role in enumerate(ROLES)}


PERMISSION_DEFINITIONS = [
    # Sales
    ("sales.read", "View Sales", "View sales and transactions", C.SALES),
    ("sales.create", "Create Sale", "Create new sales", C.SALES),
    ("sales.void", "Void Sale", "Void completed sales", C.SALES),
    ("sales.refund", "Refund Sale", "Process refunds", C.SALES),
    ("sales.export", "Export Sales", "Export sales data", C.SALES),
    ("sales.viewProfit", "View Sale Profit", "View profit and cost data on sales", C.SALES),

    # Products
    ("products.read", "View Products", "View products catalog", C.PRODUCTS),
    ("products.create", "Create Product", "Create new products", C.PRODUCTS),
    ("products.update", "Update Product", "Edit product details", C.PRODUCTS),
    ("products.delete", "Delete Product", "Deactivate products", C.PRODUCTS),
    ("products.viewCost", "View Product Cost", "View cost price and margins", C.PRODUCTS),

    # Inventory
    ("inventory.read", "View Stock", "View stock levels overview", C.INVENTORY),
    ("inventory.batches", "View Batches", "View inventory batches and expiry", C.INVENTORY),
    ("inventory.movements", "View Movements", "View stock movement history", C.INVENTORY),
    ("inventory.adjust", "Adjust Stock", "Create stock adjustments", C.INVENTORY),
    ("inventory.valuation", "View Valuation", "View inventory valuation data", C.INVENTORY),

    # Customers
    ("customers.read", "View Customers", "View customer list", C.CUSTOMERS),
    ("customers.create", "Create Customer", "Create new customers", C.CUSTOMERS),
    ("customers.update", "Update Customer", "Edit customer details", C.CUSTOMERS),
    ("customers.delete", "Delete Customer", "Deactivate customers", C.CUSTOMERS),
    ("customers.viewBalance", "View Balances", "View customer balances and credit", C.CUSTOMERS),

    # Suppliers
    ("suppliers.read", "View Suppliers", "View supplier list", C.SUPPLIERS),
    ("suppliers.create", "Create Supplier", "Create new suppliers", C.SUPPLIERS),
    ("suppliers.update", "Update Supplier", "Edit supplier details", C.SUPPLIERS),
    ("suppliers.delete", "Delete Supplier", "Deactivate suppliers", C.SUPPLIERS),

    # Purchase orders / goods receipts
    ("purchases.read", "View Purchases", "View purchase orders", C.PURCHASES),
    ("purchases.create", "Create Purchase Order", "Create purchase orders", C.PURCHASES),
    ("purchases.approve", "Approve Purchase Order", "Send, approve, cancel and close purchase orders", C.PURCHASES),
    ("purchases.receive", "Receive Goods", "Receive goods and create goods receipts", C.PURCHASES),
    ("purchases.viewGR", "View Goods Receipts", "View goods receipt history", C.PURCHASES),

    # Invoices
    ("invoices.read", "View Invoices", "View invoices", C.INVOICES),
    ("invoices.create", "Create Invoice", "Create invoices", C.INVOICES),
    ("invoices.payment", "Record Payment", "Record invoice payments", C.INVOICES),

    # Expenses
    ("expenses.read", "View Expenses", "View expenses", C.EXPENSES),
    ("expenses.create", "Create Expense", "Create expenses", C.EXPENSES),
    ("expenses.update", "Update Expense", "Edit expenses", C.EXPENSES),
    ("expenses.delete", "Delete Expense", "Delete expenses", C.EXPENSES),

    # Reports
    ("reports.sales", "Sales Reports", "View sales reports (daily, summary, trends)", C.REPORTS),
    ("reports.inventory", "Inventory Reports", "View inventory reports (stock, valuation, expiry)", C.REPORTS),
    ("reports.financial", "Financial Reports", "View financial reports (P&L, income vs expense)", C.REPORTS),
    ("reports.customers", "Customer Reports", "View customer reports (aging, accounts)", C.REPORTS),
    ("reports.expenses", "Expense Reports", "View expense reports (summary, by category)", C.REPORTS),

    # Users
    ("users.read", "View Users", "View user list", C.USERS),
    ("users.create", "Create User", "Create new users", C.USERS),
    ("users.update", "Update User", "Edit user details", C.USERS),
    ("users.delete", "Delete User", "Deactivate users", C.USERS),

    # Settings / system
    ("settings.read", "View Settings", "View system settings", C.SETTINGS),
    ("settings.update", "Update Settings", "Modify system settings", C.SETTINGS),
    ("settings.roles", "Manage Roles", "Manage roles and permissions", C.SETTINGS),
    ("settings.reset", "Reset Data", "Execute data reset", C.SETTINGS),

    # POS
    ("pos.access", "POS Access", "Access the POS terminal", C.POS),
    ("pos.hold", "Hold Orders", "Hold and recall orders", C.POS),
    ("pos.discount", "Item Discounts", "Apply item-level discounts at POS", C.POS),
    ("pos.cartDiscount", "Cart Discounts", "Apply cart-level (whole order) discounts", C.POS),
    ("pos.creditSale", "Credit Sales", "Process credit sales (on-account)", C.POS),

    # Discounts
    ("discounts.apply", "Apply Discounts", "Apply discounts on sales", C.DISCOUNTS),
    ("discounts.unlimited", "Unlimited Discounts", "Apply discounts without a limit", C.DISCOUNTS),
]


_ALL_KEYS = [perm[0] for perm in PERMISSION_DEFINITIONS]

_MANAGER_EXCLUDED = {
    "settings.update",
    "settings.roles",
    "settings.reset",
    "users.create",
    "users.delete",
    "discounts.unlimited",
}

DEFAULT_ROLE_PERMISSIONS = {
    # Admin: everything
    "ADMIN": list(_ALL_KEYS),

    # Manager: full operational access except system-critical settings
    "MANAGER": [key for key in _ALL_KEYS if key not in _MANAGER_EXCLUDED],

    # Cashier: POS operations and basic reads
    "CASHIER": [
        "pos.access",
        "pos.hold",
        "pos.discount",
        "sales.read",
        "sales.create",
        "discounts.apply",
        "products.read",
        "customers.read",
        "customers.create",
        "inventory.read",
        "invoices.read",
        "invoices.payment",
    ],

    # Staff: read-only
    "STAFF": [
        "products.read",
        "customers.read",
        "suppliers.read",
        "inventory.read",
        "inventory.batches",
        "sales.read",
        "invoices.read",
        "purchases.read",
        "purchases.viewGR",
    ],
}
