from .catalog import Product
from .customers import Customer
from .users import User, ROLES
from .sales import Sale, SaleLine, SALE_STATUSES

__all__ = [
    'Product',
    'Customer',
    'User', 'ROLES',
    'Sale', 'SaleLine', 'SALE_STATUSES',
]
