# fulfillment/services/notification_service.py
from fulfillment.celery_worker import celery_app
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Powiadomienia best-effort (email/push sa poza tym serwisem).
    Uzywa Celery do asynchronicznego przetwarzania, blad kolejki jest tylko logowany.
    """

    def notify(self, user_id: int, kind: str, title: str, body: str, data: dict | None = None) -> bool:
        try:
            send_notification_task.delay(user_id, kind, title, body, data or {})
            return True
        except Exception as e:
            logger.error(f"Failed to enqueue {kind} notification for user {user_id}: {e}")
            return False

    def send_order_notification(self, user_id: int, order_id: int, order_number: str) -> bool:
        return self.notify(
            user_id,
            "ORDER_PLACED",
            "Order placed",
            f"Your order {order_number} is being processed",
            {"order_id": order_id},
        )


@celery_app.task(name="fulfillment.services.notification_service.send_notification_task")
def send_notification_task(user_id: int, kind: str, title: str, body: str, data: dict):
    """
    Celery task - dostarczenie (email/SMS/push) nalezy do notification-service.
    Tutaj tylko logujemy.
    """
    logger.info(f"[NOTIFICATION] {kind} -> user {user_id}: {title} | {body}")

    return {"user_id": user_id, "kind": kind, "status": "sent"}
