from .auth import User, SessionToken, USER_ROLES
from .catalog import Product
from .sales import Transaction, TransactionItem, DailyCounter, PAYMENT_METHODS, TRANSACTION_STATUSES

__all__ = [
    'User', 'SessionToken', 'USER_ROLES',
    'Product',
    'Transaction', 'TransactionItem', 'DailyCounter',
    'PAYMENT_METHODS', 'TRANSACTION_STATUSES',
]
