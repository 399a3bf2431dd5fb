from .models import PCS, CARTON, CartItem, CartState, CustomerRef, DiscountRule, ProductSnapshot
from .persistence import CART_STORAGE_KEY, InMemoryCartPersistence, JsonFileCartPersistence
from .store import CartStore

__all__ = [
    'PCS', 'CARTON',
    'CartItem', 'CartState', 'CustomerRef', 'DiscountRule', 'ProductSnapshot',
    'CART_STORAGE_KEY', 'InMemoryCartPersistence', 'JsonFileCartPersistence',
    'CartStore',
]
