# fulfillment/api/deps.py
"""
Dependency providers dla routerow. Kazdy kolaborator ma wlasny provider,
zeby testy mogly go podmienic przez app.dependency_overrides.
"""
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from fulfillment.data.database import get_db
from fulfillment.domain.errors import NotAuthorized
from fulfillment.domain.permissions import Principal, CUSTOMER
from fulfillment.services.cart_service import CartService
from fulfillment.services.catalog_client import CatalogClient
from fulfillment.services.checkout_service import CheckoutValidator
from fulfillment.services.confirmation_service import ConfirmationService
from fulfillment.services.delivery_service import DeliveryService
from fulfillment.services.lock_service import LockService
from fulfillment.services.notification_service import NotificationService
from fulfillment.services.order_service import OrderService
from fulfillment.services.tracking_service import TrackingService
from fulfillment.services.webhook_service import WebhookService
from fulfillment.utils.tokens import TokenGenerator


def get_principal(
    x_user_id: int | None = Header(None),
    x_user_role: str = Header(CUSTOMER),
) -> Principal:
    # uwierzytelnienie robi gateway, tutaj tylko odczyt naglowkow
    if x_user_id is None:
        raise NotAuthorized("Missing X-User-Id header")
    return Principal.from_role(x_user_id, x_user_role)


def require(permission: str):
    def checker(principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.can(permission):
            raise NotAuthorized(f"Role {principal.role} lacks {permission}")
        return principal

    return checker


def get_catalog_client() -> CatalogClient:
    return CatalogClient()


def get_lock_service() -> LockService:
    return LockService()


def get_webhook_service() -> WebhookService:
    return WebhookService()


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_token_generator() -> TokenGenerator:
    return TokenGenerator()


def get_cart_service(
    db: Session = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    lock_service: LockService = Depends(get_lock_service),
) -> CartService:
    return CartService(db=db, catalog_client=catalog, lock_service=lock_service)


def get_checkout_validator(
    db: Session = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
) -> CheckoutValidator:
    return CheckoutValidator(db, catalog)


def get_order_service(
    db: Session = Depends(get_db),
    validator: CheckoutValidator = Depends(get_checkout_validator),
    lock_service: LockService = Depends(get_lock_service),
    webhooks: WebhookService = Depends(get_webhook_service),
    notifications: NotificationService = Depends(get_notification_service),
    tokens: TokenGenerator = Depends(get_token_generator),
) -> OrderService:
    return OrderService(
        db=db,
        validator=validator,
        lock_service=lock_service,
        webhooks=webhooks,
        notifications=notifications,
        tokens=tokens,
    )


def get_delivery_service(
    db: Session = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    orders: OrderService = Depends(get_order_service),
    webhooks: WebhookService = Depends(get_webhook_service),
    notifications: NotificationService = Depends(get_notification_service),
    tokens: TokenGenerator = Depends(get_token_generator),
) -> DeliveryService:
    return DeliveryService(
        db=db,
        catalog_client=catalog,
        orders=orders,
        tracking=TrackingService(db, tokens),
        webhooks=webhooks,
        notifications=notifications,
    )


def get_confirmation_service(
    db: Session = Depends(get_db),
    deliveries: DeliveryService = Depends(get_delivery_service),
    webhooks: WebhookService = Depends(get_webhook_service),
    notifications: NotificationService = Depends(get_notification_service),
    tokens: TokenGenerator = Depends(get_token_generator),
) -> ConfirmationService:
    return ConfirmationService(db, deliveries, webhooks, notifications, tokens)
