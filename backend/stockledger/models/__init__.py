from .tenancy import Organization
from .catalog import Product, Location, LOCATION_TYPES
from .inventory import Inventory, InventoryTransaction, TRANSACTION_TYPES

__all__ = [
    'Organization',
    'Product', 'Location', 'LOCATION_TYPES',
    'Inventory', 'InventoryTransaction', 'TRANSACTION_TYPES',
]
