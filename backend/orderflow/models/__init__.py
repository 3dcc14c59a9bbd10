from .tenancy import Organization, Store
from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .security import SecurityEvent
from .catalog import Product
from .inventory import StockItem, StockMovement
from .customers import Customer, CustomerTransaction
from .orders import Order, OrderItem, OrderSequence, LedgerIntent

__all__ = [
    'Organization', 'Store',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'SecurityEvent',
    'Product',
    'StockItem', 'StockMovement',
    'Customer', 'CustomerTransaction',
    'Order', 'OrderItem', 'OrderSequence', 'LedgerIntent',
]
