from .auth import User
from .catalog import Category, Item, StockPurchase
from .customers import Customer
from .sales import Sale, SaleLine
from .audit import ActivityLog, StockEditLog
from .documents import SequenceCounter, EmailSubscription

__all__ = [
    'User',
    'Category', 'Item', 'StockPurchase',
    'Customer',
    'Sale', 'SaleLine',
    'ActivityLog', 'StockEditLog',
    'SequenceCounter', 'EmailSubscription',
]
