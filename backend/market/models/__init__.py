from .auth import User, SessionToken
from .stores import Store, Product
from .customers import Address, Cart, CartItem
from .orders import Order, OrderItem, TicketQr
from .payments import Payment
from .settings import SystemSetting

__all__ = [
    'User', 'SessionToken',
    'Store', 'Product',
    'Address', 'Cart', 'CartItem',
    'Order', 'OrderItem', 'TicketQr',
    'Payment',
    'SystemSetting',
]
