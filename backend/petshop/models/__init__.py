from .auth import User, SessionToken
from .catalog import Category, Supplier, Product
from .inventory import StockMovement, DocumentSequence
from .purchases import Purchase, PurchaseLine
from .sales import Sale, SaleLine
from .customers import Customer
from .finance import FinanceTransaction, BalanceSnapshot

__all__ = [
    'User', 'SessionToken',
    'Category', 'Supplier', 'Product',
    'StockMovement', 'DocumentSequence',
    'Purchase', 'PurchaseLine',
    'Sale', 'SaleLine',
    'Customer',
    'FinanceTransaction', 'BalanceSnapshot',
]
