from .catalog import Product, Box, SELLABLE_MODELS
from .orders import Order, OrderSettlement
from .inventory import InventoryHistory

__all__ = [
    'Product', 'Box', 'SELLABLE_MODELS',
    'Order', 'OrderSettlement',
    'InventoryHistory',
]
