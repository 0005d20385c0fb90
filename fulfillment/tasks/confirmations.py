# fulfillment/tasks/confirmations.py
from sqlalchemy.orm import Session

from fulfillment.celery_worker import celery_app
from fulfillment.data.database import SessionLocal
from fulfillment.services.catalog_client import CatalogClient
from fulfillment.services.checkout_service import CheckoutValidator
from fulfillment.services.confirmation_service import ConfirmationService
from fulfillment.services.delivery_service import DeliveryService
from fulfillment.services.lock_service import LockService
from fulfillment.services.notification_service import NotificationService
from fulfillment.services.order_service import OrderService
from fulfillment.services.tracking_service import TrackingService
from fulfillment.services.webhook_service import WebhookService
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


def build_confirmation_service(db: Session) -> ConfirmationService:
    catalog = CatalogClient()
    webhooks = WebhookService()
    notifications = NotificationService()
    orders = OrderService(
        db=db,
        validator=CheckoutValidator(db, catalog),
        lock_service=LockService(),
        webhooks=webhooks,
        notifications=notifications,
    )
    deliveries = DeliveryService(
        db=db,
        catalog_client=catalog,
        orders=orders,
        tracking=TrackingService(db),
        webhooks=webhooks,
        notifications=notifications,
    )
    return ConfirmationService(db, deliveries, webhooks, notifications)


@celery_app.task(name="fulfillment.tasks.confirmations.sweep_confirmation_reminders_task")
def sweep_confirmation_reminders_task():
    logger.info("Confirmation reminder sweep started")

    db = SessionLocal()
    try:
        sent = build_confirmation_service(db).sweep_reminders()
    finally:
        db.close()

    return {"reminded": sent}


@celery_app.task(name="fulfillment.tasks.confirmations.expire_confirmations_task")
def expire_confirmations_task():
    logger.info("Confirmation expiry sweep started")

    db = SessionLocal()
    try:
        expired = build_confirmation_service(db).sweep_expired()
    finally:
        db.close()

    return {"expired": expired}
