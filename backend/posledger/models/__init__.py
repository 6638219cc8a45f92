from .auth import User, SessionToken
from .catalog import Product, Customer, Supplier
from .inventory import InventoryMovement, MovementType, MovementPolicy, MOVEMENT_POLICIES
from .sales import Sale, SaleLine
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .returns import Return, ReturnItem

__all__ = [
    'User', 'SessionToken',
    'Product', 'Customer', 'Supplier',
    'InventoryMovement', 'MovementType', 'MovementPolicy', 'MOVEMENT_POLICIES',
    'Sale', 'SaleLine',
    'PurchaseOrder', 'PurchaseOrderItem',
    'Return', 'ReturnItem',
]
