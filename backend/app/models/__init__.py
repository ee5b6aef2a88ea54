from .auth import User, SessionToken
from .inventory import Product, StockMovement
from .orders import Order, OrderItem

__all__ = [
    'User', 'SessionToken',
    'Product', 'StockMovement',
    'Order', 'OrderItem',
]
