# fulfillment/services/webhook_service.py
import hashlib
import hmac
import json
from typing import Callable, List

import requests
from requests import RequestException
from fastapi.encoders import jsonable_encoder

from fulfillment.celery_worker import celery_app
from fulfillment.utils.clock import utc_now
from fulfillment.utils.settings import (
    WEBHOOK_URLS,
    WEBHOOK_SECRET,
    WEBHOOK_MAX_RETRIES,
    WEBHOOK_BACKOFF_BASE_SECONDS,
    WEBHOOK_TIMEOUT_SECONDS,
)
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
USER_AGENT = "Fulfillment-Webhook/1.0"


def build_event(event_kind: str, subject_id, payload: dict | None = None) -> dict:
    return jsonable_encoder(
        {
            "eventKind": event_kind,
            "subjectId": subject_id,
            "timestamp": utc_now(),
            "payload": payload or {},
        }
    )


def _enqueue(url: str, event: dict) -> None:
    deliver_webhook_task.delay(url, event)


class WebhookService:
    """
    Fan-out zdarzen cyklu zycia do zarejestrowanych listenerow.

    publish() nigdy nie rzuca: zdarzenie trafia do kolejki Celery
    (retry z exponential backoff), a kazdy blad jest tylko logowany.
    Dostarczanie at-least-once, listener musi tolerowac duplikaty.
    """

    def __init__(
        self,
        listeners: List[str] | None = None,
        dispatch: Callable[[str, dict], None] | None = None,
    ):
        self.listeners = list(WEBHOOK_URLS if listeners is None else listeners)
        self.dispatch = dispatch or _enqueue

    def publish(self, event_kind: str, subject_id, payload: dict | None = None) -> dict:
        event = build_event(event_kind, subject_id, payload)

        if not self.listeners:
            logger.warning(f"No webhook listeners configured, skipping {event_kind} for {subject_id}")
            return event

        for url in self.listeners:
            try:
                self.dispatch(url, event)
            except Exception as e:
                logger.error(f"Failed to queue webhook {event_kind} for {subject_id} to {url}: {e}")

        return event


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str | None = WEBHOOK_SECRET) -> bool:
    """
    Weryfikacja po stronie odbiorcy webhooka.

    Listener liczy HMAC-SHA256 z surowego body i porownuje z naglowkiem
    X-Webhook-Signature; bez sekretu podpis nie jest wysylany.
    """
    if not secret:
        return True
    return hmac.compare_digest(sign_payload(body, secret), signature or "")


def backoff_delay(retries: int) -> float:
    return WEBHOOK_BACKOFF_BASE_SECONDS * (2 ** retries)


def post_webhook(url: str, event: dict, secret: str | None = WEBHOOK_SECRET, timeout: float = WEBHOOK_TIMEOUT_SECONDS) -> int:
    body = json.dumps(event, separators=(",", ":"), sort_keys=True)
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
    }
    if secret:
        headers[SIGNATURE_HEADER] = sign_payload(body.encode(), secret)

    resp = requests.post(url, data=body, headers=headers, timeout=timeout)
    resp.raise_for_status()
    return resp.status_code


@celery_app.task(
    bind=True,
    name="fulfillment.services.webhook_service.deliver_webhook_task",
    max_retries=WEBHOOK_MAX_RETRIES,
)
def deliver_webhook_task(self, url: str, event: dict):
    attempts = self.request.retries + 1
    kind = event.get("eventKind")

    try:
        status_code = post_webhook(url, event)
    except RequestException as exc:
        if self.request.retries >= WEBHOOK_MAX_RETRIES:
            # nie propagujemy, przejscie stanu juz sie odbylo
            logger.error(f"Webhook {kind} to {url} failed permanently after {attempts} attempts: {exc}")
            return {"url": url, "eventKind": kind, "attempts": attempts, "outcome": "failed"}

        countdown = backoff_delay(self.request.retries)
        logger.warning(f"Webhook {kind} to {url} failed (attempt {attempts}), retry in {countdown}s: {exc}")
        raise self.retry(exc=exc, countdown=countdown)

    logger.info(f"Webhook {kind} delivered to {url} (attempt {attempts})")
    return {"url": url, "eventKind": kind, "attempts": attempts, "outcome": "delivered", "status_code": status_code}
