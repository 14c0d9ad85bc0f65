from models.user import User
from models.location import Franchise, Location
from models.table_management import Table
from models.order_management import Order, OrderItem, PendingOrder, OrderHistory
from models.coupon import Coupon, DishCoupon, AppliedCoupon
from models.customer_data import CustomerData

# Register all models
__all__ = ['User', 'Franchise', 'Location', 'Table', 'Order', 'OrderItem', 'PendingOrder', 'OrderHistory',
           'Coupon', 'DishCoupon', 'AppliedCoupon', 'CustomerData']
