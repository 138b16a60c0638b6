from .auth import User, SessionToken
from .catalog import Product, ProductVariant, ShippingMethod, Address, Setting
from .inventory import StockMovement
from .orders import Order, OrderItem, OrderEvent, DocumentSequence
from .invoices import Invoice
from .outbox import OutboxEvent

__all__ = [
    'User', 'SessionToken',
    'Product', 'ProductVariant', 'ShippingMethod', 'Address', 'Setting',
    'StockMovement',
    'Order', 'OrderItem', 'OrderEvent', 'DocumentSequence',
    'Invoice',
    'OutboxEvent',
]
