# fulfillment/domain/errors.py
"""
Hierarchia bledow domeny fulfillment.

    FulfillmentError
    ├── ValidationError (400)
    │   ├── OutOfStock
    │   ├── CartEmpty
    │   └── CheckoutFailed
    ├── NotFoundError (404)
    │   ├── CartItemNotFound, ProductNotFound, StoreNotFound
    │   ├── OrderNotFound, DeliveryNotFound
    │   ├── TrackingNotFound
    │   └── TokenNotFound
    ├── ConflictError (409)
    │   ├── CartAlreadyConverted
    │   ├── InvalidStateTransition
    │   ├── DeliveryAlreadyExists
    │   ├── ConfirmationAlreadyIssued
    │   ├── ConfirmationAlreadyConfirmed
    │   └── TokenExpired
    ├── AuthorizationError (403)
    │   ├── NotAuthorized
    │   ├── CommissionOverdue
    │   └── DriverNotEligible
    └── DependencyError (502)
        └── CatalogUnavailable

Serwisy rzucaja te wyjatki, main.py tlumaczy je na odpowiedz HTTP w jednym miejscu.
"""
from typing import Any, Dict, Optional


class FulfillmentError(Exception):
    status_code: int = 500
    default_code: str = "FULFILLMENT_ERROR"
    default_message: str = "Fulfillment error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# 400
class ValidationError(FulfillmentError):
    status_code = 400
    default_code = "ValidationError"
    default_message = "Invalid input"


class OutOfStock(ValidationError):
    default_code = "OutOfStock"
    default_message = "Product is out of stock or insufficient quantity"


class CartEmpty(ValidationError):
    default_code = "CartEmpty"
    default_message = "Cart is empty"


class CheckoutFailed(ValidationError):
    default_code = "CheckoutFailed"
    default_message = "Cart validation failed"


# 404
class NotFoundError(FulfillmentError):
    status_code = 404
    default_code = "NotFound"
    default_message = "Not found"


class CartItemNotFound(NotFoundError):
    default_code = "CartItemNotFound"
    default_message = "Cart item not found"


class ProductNotFound(NotFoundError):
    default_code = "ProductNotFound"
    default_message = "Product not found"


class StoreNotFound(NotFoundError):
    default_code = "StoreNotFound"
    default_message = "Store not found or location not available"


class OrderNotFound(NotFoundError):
    default_code = "OrderNotFound"
    default_message = "Order not found"


class DeliveryNotFound(NotFoundError):
    default_code = "DeliveryNotFound"
    default_message = "Delivery not found"


class TrackingNotFound(NotFoundError):
    default_code = "TrackingNotFound"
    default_message = "Tracking code not found"


class TokenNotFound(NotFoundError):
    default_code = "TokenNotFound"
    default_message = "Purchase confirmation not found"


# 409
class ConflictError(FulfillmentError):
    status_code = 409
    default_code = "Conflict"
    default_message = "Resource was modified concurrently"


class CartAlreadyConverted(ConflictError):
    default_code = "CartAlreadyConverted"
    default_message = "Cart has already been converted to an order"


class InvalidStateTransition(ConflictError):
    default_code = "InvalidStateTransition"
    default_message = "Delivery cannot move to the requested state"


class DeliveryAlreadyExists(ConflictError):
    default_code = "DeliveryAlreadyExists"
    default_message = "Order already has an active delivery"


class ConfirmationAlreadyIssued(ConflictError):
    default_code = "ConfirmationAlreadyIssued"
    default_message = "A confirmation is already pending for this delivery"


class ConfirmationAlreadyConfirmed(ConflictError):
    default_code = "ConfirmationAlreadyConfirmed"
    default_message = "Purchase has already been confirmed"


class TokenExpired(ConflictError):
    default_code = "TokenExpired"
    default_message = "Purchase confirmation has expired"


# 403
class AuthorizationError(FulfillmentError):
    status_code = 403
    default_code = "Forbidden"
    default_message = "Access denied"


class NotAuthorized(AuthorizationError):
    default_code = "NotAuthorized"
    default_message = "Not authorized to perform this action"


class CommissionOverdue(AuthorizationError):
    default_code = "CommissionOverdue"
    default_message = "Carrier has outstanding commission payments"


class DriverNotEligible(AuthorizationError):
    default_code = "DriverNotEligible"
    default_message = "Carrier is not eligible for this delivery"


# 502
class DependencyError(FulfillmentError):
    status_code = 502
    default_code = "DependencyError"
    default_message = "Upstream service failure"


class CatalogUnavailable(DependencyError):
    default_code = "CatalogUnavailable"
    default_message = "Catalog service is unavailable"
