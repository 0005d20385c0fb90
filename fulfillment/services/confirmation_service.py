# fulfillment/services/confirmation_service.py
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from fulfillment.data.models.confirmation import ConfirmationModel, ISSUED, CONFIRMED, EXPIRED
from fulfillment.data.models.delivery import STORE_PURCHASE, DELIVERED
from fulfillment.domain.errors import (
    ConfirmationAlreadyConfirmed,
    ConfirmationAlreadyIssued,
    ConflictError,
    InvalidStateTransition,
    NotAuthorized,
    TokenExpired,
    TokenNotFound,
    ValidationError,
)
from fulfillment.domain.permissions import Principal
from fulfillment.repos.confirmation_repo import ConfirmationRepo
from fulfillment.services.delivery_service import DeliveryService, delivery_view
from fulfillment.services.notification_service import NotificationService
from fulfillment.services.webhook_service import WebhookService
from fulfillment.utils.clock import as_utc, utc_now
from fulfillment.utils.retry import StaleStateError, cas_retry
from fulfillment.utils.settings import CONFIRMATION_TTL_SECONDS, REMINDER_WINDOW_SECONDS
from fulfillment.utils.tokens import TokenGenerator
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


def confirmation_view(confirmation: ConfirmationModel) -> Dict[str, Any]:
    return {
        "token": confirmation.token,
        "delivery_id": confirmation.delivery_id,
        "status": confirmation.status,
        "issued_at": as_utc(confirmation.issued_at),
        "expires_at": as_utc(confirmation.expires_at),
        "confirmed_by": confirmation.confirmed_by,
        "confirmed_at": as_utc(confirmation.confirmed_at),
        "reminder_sent_at": as_utc(confirmation.reminder_sent_at),
        "expired_at": as_utc(confirmation.expired_at),
    }


class ConfirmationService:
    """
    Potwierdzenie odbioru zakupu ze sklepu przez wlasciciela sklepu.

    TTL jest egzekwowany leniwie przy kazdym odczycie tokenu; sweep_expired
    to tylko sprzatanie, poprawnosc od niego nie zalezy.
    """

    def __init__(
        self,
        db: Session,
        deliveries: DeliveryService,
        webhooks: WebhookService,
        notifications: NotificationService,
        tokens: TokenGenerator | None = None,
        clock: Callable[[], datetime] = utc_now,
        ttl_seconds: int = CONFIRMATION_TTL_SECONDS,
        reminder_window_seconds: int = REMINDER_WINDOW_SECONDS,
    ):
        self.db = db
        self.repo = ConfirmationRepo(db)
        self.deliveries = deliveries
        self.webhooks = webhooks
        self.notifications = notifications
        self.tokens = tokens or TokenGenerator()
        self.clock = clock
        self.ttl_seconds = ttl_seconds
        self.reminder_window_seconds = reminder_window_seconds

    def issue(self, delivery_id: int, ttl: int | None = None) -> Dict[str, Any]:
        delivery = self.deliveries.get_delivery_model(delivery_id)
        if delivery.kind != STORE_PURCHASE:
            raise ValidationError("Only store purchases require confirmation", details={"delivery_id": delivery_id})
        if delivery.status != DELIVERED:
            raise InvalidStateTransition(
                "Delivery must be DELIVERED before confirmation is issued",
                details={"delivery_id": delivery_id, "status": delivery.status},
            )

        now = self.clock()
        expired_previous = None
        try:
            existing = self.repo.get_active_for_delivery(delivery.id)
            if existing is not None:
                if existing.status == ISSUED and self._is_overdue(existing, now):
                    self._expire(existing, now)
                    expired_previous = existing
                else:
                    raise ConfirmationAlreadyIssued(details={"delivery_id": delivery_id})

            confirmation = ConfirmationModel(
                token=self.tokens.confirmation_token(),
                delivery_id=delivery.id,
                active_delivery_id=delivery.id,
                status=ISSUED,
                issued_at=now,
                expires_at=now + timedelta(seconds=ttl or self.ttl_seconds),
            )
            self.repo.create_confirmation(confirmation)
            self.db.commit()
        except IntegrityError:
            # active_delivery_id jest unique
            self.db.rollback()
            raise ConfirmationAlreadyIssued(details={"delivery_id": delivery_id})
        except Exception:
            self.db.rollback()
            raise

        if expired_previous is not None:
            self._publish_expired(expired_previous)

        logger.info(f"Confirmation issued for delivery {delivery.id}, expires at {confirmation.expires_at}")
        self.webhooks.publish(
            "confirmation.issued",
            delivery.id,
            {"expiresAt": confirmation.expires_at},
        )
        self.notifications.notify(
            delivery.store_owner_id,
            "PURCHASE_CONFIRMATION_REQUIRED",
            "Confirm delivered purchase",
            "A delivery from your store is waiting for confirmation",
            {"delivery_id": delivery.id, "token": confirmation.token, "expires_at": as_utc(confirmation.expires_at).isoformat()},
        )
        return confirmation_view(confirmation)

    def confirm(self, token: str, principal: Principal) -> Dict[str, Any]:
        try:
            confirmation, delivery = self._confirm(token, principal)
        except StaleStateError:
            raise ConflictError("Confirmation was modified concurrently, try again")

        logger.info(f"Delivery {delivery.id} confirmed by store owner {principal.user_id}")
        self.deliveries.emit(delivery)
        self.webhooks.publish(
            "confirmation.confirmed",
            delivery.id,
            {"confirmedBy": principal.user_id, "confirmedAt": confirmation.confirmed_at},
        )
        customer_id = self.deliveries.orders.get_order_model(delivery.order_id).owner_id
        self.notifications.notify(
            customer_id,
            "DELIVERY_CONFIRMED",
            "Delivery confirmed",
            "The store confirmed your delivery",
            {"delivery_id": delivery.id},
        )
        return {
            "confirmation": confirmation_view(confirmation),
            "delivery_request": delivery_view(delivery, self.deliveries.tracking.code_for(delivery.id)),
        }

    @cas_retry()
    def _confirm(self, token: str, principal: Principal):
        self.db.expire_all()
        confirmation = self._get_model(token)
        delivery = self.deliveries.get_delivery_model(confirmation.delivery_id)

        if delivery.store_owner_id != principal.user_id:
            raise NotAuthorized("Only the store owner can confirm this purchase")
        if confirmation.status == CONFIRMED:
            raise ConfirmationAlreadyConfirmed()
        if confirmation.status == EXPIRED:
            raise TokenExpired()

        now = self.clock()
        if self._is_overdue(confirmation, now):
            self._expire_now(confirmation, now)
            raise TokenExpired()

        try:
            rowcount = self.repo.update_status(
                confirmation.id,
                ISSUED,
                {"status": CONFIRMED, "confirmed_by": principal.user_id, "confirmed_at": now},
            )
            if rowcount == 0:
                raise StaleStateError(f"confirmation {confirmation.id}")
            # oba CAS-y w jednej transakcji: albo oba, albo zaden
            self.deliveries.apply_confirmation(delivery.id, now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(confirmation)
        self.db.refresh(delivery)
        return confirmation, delivery

    def get(self, token: str) -> Dict[str, Any]:
        confirmation = self._get_model(token)
        now = self.clock()
        if confirmation.status == ISSUED and self._is_overdue(confirmation, now):
            self._expire_now(confirmation, now)
            self.db.refresh(confirmation)
        return confirmation_view(confirmation)

    def sweep_reminders(self, now: datetime | None = None) -> int:
        """Przypomnienie dla wlasciciela sklepu, najwyzej jedno na potwierdzenie."""
        now = now or self.clock()
        due = self.repo.find_due_for_reminder(now, timedelta(seconds=self.reminder_window_seconds))

        sent = 0
        for confirmation in due:
            try:
                # znacznik przed wyslaniem: drugi sweep nie zlapie tego samego rekordu
                rowcount = self.repo.mark_reminded(confirmation.id, now)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to stamp reminder for confirmation {confirmation.id}: {e}")
                continue

            if rowcount == 0:
                continue

            delivery = self.deliveries.repo.get_delivery(confirmation.delivery_id)
            self.notifications.notify(
                delivery.store_owner_id,
                "PURCHASE_CONFIRMATION_REMINDER",
                "Confirmation expires soon",
                "Please confirm the delivered purchase before the link expires",
                {"delivery_id": delivery.id, "token": confirmation.token, "expires_at": as_utc(confirmation.expires_at).isoformat()},
            )
            sent += 1

        if sent:
            logger.info(f"Sent {sent} confirmation reminders")
        return sent

    def sweep_expired(self, now: datetime | None = None) -> int:
        now = now or self.clock()
        expired = 0
        for confirmation in self.repo.find_overdue(now):
            try:
                rowcount = self._expire(confirmation, now)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to expire confirmation {confirmation.id}: {e}")
                continue

            if rowcount:
                self._publish_expired(confirmation)
                expired += 1

        if expired:
            logger.info(f"Expired {expired} purchase confirmations")
        return expired

    def _get_model(self, token: str) -> ConfirmationModel:
        confirmation = self.repo.get_by_token(token) if token else None
        if confirmation is None:
            raise TokenNotFound()
        return confirmation

    @staticmethod
    def _is_overdue(confirmation: ConfirmationModel, now: datetime) -> bool:
        return now > as_utc(confirmation.expires_at)

    def _expire(self, confirmation: ConfirmationModel, now: datetime) -> int:
        # zwolnienie active_delivery_id pozwala wystawic nowe potwierdzenie
        return self.repo.update_status(
            confirmation.id,
            ISSUED,
            {"status": EXPIRED, "active_delivery_id": None, "expired_at": now},
        )

    def _expire_now(self, confirmation: ConfirmationModel, now: datetime) -> None:
        try:
            rowcount = self._expire(confirmation, now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if rowcount:
            self._publish_expired(confirmation)

    def _publish_expired(self, confirmation: ConfirmationModel) -> None:
        logger.info(f"Confirmation for delivery {confirmation.delivery_id} expired")
        self.webhooks.publish(
            "confirmation.expired",
            confirmation.delivery_id,
            {"expiresAt": as_utc(confirmation.expires_at)},
        )
