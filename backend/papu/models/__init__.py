from .auth import User, ApiToken
from .catalog import Product, Combo, ComboItem, InventoryRecord, InventoryMovement
from .recipients import Recipient
from .orders import Order, OrderLine
from .remittances import RemittanceType, Remittance
from .history import StatusHistoryEntry
from .notifications import NotificationOutbox
from .sequences import DocumentSequence
from .shipping import ShippingZone

__all__ = [
    'User', 'ApiToken',
    'Product', 'Combo', 'ComboItem', 'InventoryRecord', 'InventoryMovement',
    'Recipient',
    'Order', 'OrderLine',
    'RemittanceType', 'Remittance',
    'StatusHistoryEntry',
    'NotificationOutbox',
    'DocumentSequence',
    'ShippingZone',
]
