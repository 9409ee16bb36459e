from .catalog import Category, Supplier, Product
from .orders import Order, OrderItem
from .auth import User, SessionToken, USER_ROLES
from .audit import InventoryMovement, ReconciliationIssue, MOVEMENT_TYPES

__all__ = [
    'Category', 'Supplier', 'Product',
    'Order', 'OrderItem',
    'User', 'SessionToken', 'USER_ROLES',
    'InventoryMovement', 'ReconciliationIssue', 'MOVEMENT_TYPES',
]
