from .tenancy import Store
from .auth import User, SessionToken
from .inventory import Product, Movement
from .documents import ProductRequest, Shipment

__all__ = [
    'Store',
    'User', 'SessionToken',
    'Product', 'Movement',
    'ProductRequest', 'Shipment',
]
