#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from fulfillment.data.models.cart import CartModel
from fulfillment.data.models.cart_item import CartItemModel
from fulfillment.data.models.order import OrderModel
from fulfillment.data.models.order_item import OrderItemModel
from fulfillment.data.models.delivery import DeliveryModel
from fulfillment.data.models.tracking import TrackingRecordModel
from fulfillment.data.models.confirmation import ConfirmationModel
from fulfillment.data.models.carrier import CarrierProfileModel

__all__ = [
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "DeliveryModel",
    "TrackingRecordModel",
    "ConfirmationModel",
    "CarrierProfileModel",
]
