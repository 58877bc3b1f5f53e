#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from storefront.data.models.service import ServiceModel, ServiceOptionModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.coupon import CouponModel
from storefront.data.models.order import OrderModel, OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.order_tracking import OrderTrackingModel

__all__ = [
    "ServiceModel",
    "ServiceOptionModel",
    "CartModel",
    "CartItemModel",
    "CouponModel",
    "OrderModel",
    "OrderItemModel",
    "PaymentModel",
    "OrderTrackingModel",
]
