from .inventory import Product, StockMovement, Supplier, PRODUCT_TYPES
from .customers import Customer
from .sales import (
    Sale,
    CreditPayment,
    PAYMENT_METHODS,
    CREDIT_PAYMENT_METHODS,
    MOBILE_MONEY_PROVIDERS,
    SALE_STATUSES,
)
from .expenses import Expense, EXPENSE_CATEGORIES
from .settings import LocalSetting
from .base import SyncedMixin, SYNC_STATUSES

# Synchronized collections by wire kind name
SYNCED_MODELS = {
    "products": Product,
    "sales": Sale,
    "stockMovements": StockMovement,
    "expenses": Expense,
    "suppliers": Supplier,
    "customers": Customer,
    "creditPayments": CreditPayment,
}

__all__ = [
    'Product', 'StockMovement', 'Supplier', 'Customer',
    'Sale', 'CreditPayment', 'Expense', 'LocalSetting', 'SyncedMixin',
    'SYNCED_MODELS', 'SYNC_STATUSES', 'PRODUCT_TYPES', 'PAYMENT_METHODS',
    'CREDIT_PAYMENT_METHODS', 'MOBILE_MONEY_PROVIDERS', 'SALE_STATUSES',
    'EXPENSE_CATEGORIES',
]
