from storefront.models.user import User
from storefront.models.product import Product
from storefront.models.cart import CartItem
from storefront.models.coupon import Coupon, CouponUsage, DiscountType
from storefront.models.order import Order
from storefront.models.order_item import OrderItem
from storefront.models.order_event import OrderEvent, OrderEventType
from storefront.models.address import SavedAddress

# add ALL models here
