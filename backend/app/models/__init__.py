from .tenancy import Company, User
from .customers import Customer, Supplier
from .inventory import Product, InventoryMovement, ProductBatch
from .locations import Location
from .transactions import Transaction, TransactionItem, TransactionPayment

__all__ = [
    'Company', 'User',
    'Customer', 'Supplier',
    'Product', 'InventoryMovement', 'ProductBatch',
    'Location',
    'Transaction', 'TransactionItem', 'TransactionPayment',
]
