from .auth import User, SessionToken
from .catalog import Brand, Category, Product
from .customers import Customer, PointLog
from .discounts import Discount
from .sales import Sale, SaleItem, SuspendedSale
from .returns import Return, ReturnItem
from .shifts import CashierShift
from .settings import LoyaltySettings
from .audit import AuditLog

__all__ = [
    'User', 'SessionToken',
    'Brand', 'Category', 'Product',
    'Customer', 'PointLog',
    'Discount',
    'Sale', 'SaleItem', 'SuspendedSale',
    'Return', 'ReturnItem',
    'CashierShift',
    'LoyaltySettings',
    'AuditLog',
]
