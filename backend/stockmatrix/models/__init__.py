from .tenancy import Tenant
from .catalog import Product
from .inventory import ProductVariant, InventoryTransaction
from .templates import VariantTemplate

__all__ = [
    'Tenant',
    'Product',
    'ProductVariant', 'InventoryTransaction',
    'VariantTemplate',
]
