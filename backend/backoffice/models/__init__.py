from .tenancy import Tenant, Location, Supplier
from .inventory import Product, InventoryItem, InventoryTransaction
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .pos import PosSession, PosSessionTransaction
from .orders import Order, OrderItem, Payment
from .documents import DocumentSequence, AuditLog

__all__ = [
    'Tenant', 'Location', 'Supplier',
    'Product', 'InventoryItem', 'InventoryTransaction',
    'PurchaseOrder', 'PurchaseOrderItem',
    'PosSession', 'PosSessionTransaction',
    'Order', 'OrderItem', 'Payment',
    'DocumentSequence', 'AuditLog',
]
