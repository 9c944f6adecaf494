from .auth import User, SessionToken
from .catalog import Product, ProductVariant, Coupon, Cart, CartItem
from .orders import Order, OrderLine, OrderStatusHistory
from .guest import GuestOrder, GuestOrderLine
from .inventory import Inventory, InventoryMovement
from .pricing import SilverPrice
from .loyalty import LoyaltyProgram, LoyaltyTier, UserLoyalty, PointsTransaction

__all__ = [
    'User', 'SessionToken',
    'Product', 'ProductVariant', 'Coupon', 'Cart', 'CartItem',
    'Order', 'OrderLine', 'OrderStatusHistory',
    'GuestOrder', 'GuestOrderLine',
    'Inventory', 'InventoryMovement',
    'SilverPrice',
    'LoyaltyProgram', 'LoyaltyTier', 'UserLoyalty', 'PointsTransaction',
]
