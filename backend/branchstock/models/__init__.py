from .tenancy import Shop, Branch
from .inventory import Product, BranchStock, StockAdjustment, ADJUSTMENT_REASONS
from .documents import StockTransfer, TransferItem, DocumentSequence
from .sales import Order, OrderItem, OrderPayment, StockSyncJob
from .reconciliation import Reconciliation, VarianceRecord, StockReconciliation
from .audit import AuditEvent

__all__ = [
    'Shop', 'Branch',
    'Product', 'BranchStock', 'StockAdjustment', 'ADJUSTMENT_REASONS',
    'StockTransfer', 'TransferItem', 'DocumentSequence',
    'Order', 'OrderItem', 'OrderPayment', 'StockSyncJob',
    'Reconciliation', 'VarianceRecord', 'StockReconciliation',
    'AuditEvent',
]
