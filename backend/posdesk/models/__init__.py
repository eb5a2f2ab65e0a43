from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .security import SecurityEvent
from .inventory import Product
from .sales import Sale, SaleLine
from .returns import SaleReturn, SaleReturnLine
from .documents import DocumentSequence

__all__ = [
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'SecurityEvent',
    'Product',
    'Sale', 'SaleLine',
    'SaleReturn', 'SaleReturnLine',
    'DocumentSequence',
]
