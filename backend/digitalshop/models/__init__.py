from .auth import User, RolePermission
from .inventory import Product, InventoryBatch, StockMovement
from .customers import Customer, Invoice, InvoicePayment
from .sales import Sale, SaleItem, Refund, RefundItem
from .holds import HeldOrder, HeldOrderItem
from .purchasing import Supplier, PurchaseOrder, PurchaseOrderItem, GoodsReceipt, GoodsReceiptItem
from .expenses import Expense, ExpenseCategory
from .settings import SystemSettings
from .documents import DocumentSequence

__all__ = [
    'User', 'RolePermission',
    'Product', 'InventoryBatch', 'StockMovement',
    'Customer', 'Invoice', 'InvoicePayment',
    'Sale', 'SaleItem', 'Refund', 'RefundItem',
    'HeldOrder', 'HeldOrderItem',
    'Supplier', 'PurchaseOrder', 'PurchaseOrderItem', 'GoodsReceipt', 'GoodsReceiptItem',
    'Expense', 'ExpenseCategory',
    'SystemSettings',
    'DocumentSequence',
]
