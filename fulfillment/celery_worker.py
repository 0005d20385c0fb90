# fulfillment/celery_worker.py
from celery import Celery

from fulfillment.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "fulfillment",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAŻNE: Explicite importuj taski, żeby Celery je zarejestrował
celery_app.conf.imports = (
    "fulfillment.tasks.confirmations",
    "fulfillment.services.notification_service",
    "fulfillment.services.webhook_service",
)

# Konfiguracja beat schedule
celery_app.conf.beat_schedule = {
    "confirmation-reminders-every-minute": {
        "task": "fulfillment.tasks.confirmations.sweep_confirmation_reminders_task",
        "schedule": 60.0,
    },
    "expire-confirmations-every-minute": {
        "task": "fulfillment.tasks.confirmations.expire_confirmations_task",
        "schedule": 60.0,
    },
}

celery_app.conf.timezone = "UTC"
celery_app.conf.task_serializer = "json"
