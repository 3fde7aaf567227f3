# storefront/models/__init__.py
from storefront.models.user_models import User, UserActivity
from storefront.models.business_models import DeliveryBusiness, CustomerProfile
from storefront.models.menu_models import MenuItem, FlavorOption, FlavorPrice, MenuItemFlavor, PizzaSize
from storefront.models.order_models import Order, OrderItem, OrderStatus, PaymentMethod
from storefront.models.coupon_models import Coupon, CouponRedemption, CouponType
