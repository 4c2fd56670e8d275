from .tenancy import Tenant
from .auth import User, SessionToken
from .catalog import Brand, Category, Product, StockMovement
from .sales import Transaction, TransactionItem

__all__ = [
    'Tenant',
    'User', 'SessionToken',
    'Brand', 'Category', 'Product', 'StockMovement',
    'Transaction', 'TransactionItem',
]
