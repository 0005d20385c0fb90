# fulfillment/services/delivery_service.py
from datetime import datetime
from typing import Any, Callable, Dict, List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.data.models.delivery import (
    DeliveryModel,
    STORE_PURCHASE,
    USER_TO_USER,
    CREATED,
    ASSIGNED,
    IN_TRANSIT,
    DELIVERED,
    CONFIRMED,
    CANCELLED,
)
from fulfillment.data.models.order import OrderModel, CART_ORDER
from fulfillment.domain.carriers import CarrierProfile, REJECTED
from fulfillment.domain.errors import (
    CommissionOverdue,
    ConflictError,
    DeliveryAlreadyExists,
    DeliveryNotFound,
    DriverNotEligible,
    InvalidStateTransition,
    NotAuthorized,
    StoreNotFound,
    ValidationError,
)
from fulfillment.domain.permissions import Principal, DRIVER_ROLES
from fulfillment.repos.carrier_repo import CarrierRepo
from fulfillment.repos.confirmation_repo import ConfirmationRepo
from fulfillment.repos.delivery_repo import DeliveryRepo
from fulfillment.services.catalog_client import CatalogClient
from fulfillment.services.notification_service import NotificationService
from fulfillment.services.order_service import OrderService, order_view
from fulfillment.services.pricing import FeeModel, calculate_delivery_estimate
from fulfillment.services.tracking_service import TrackingService
from fulfillment.services.webhook_service import WebhookService
from fulfillment.utils.clock import as_utc, utc_now
from fulfillment.utils.retry import StaleStateError, cas_retry
from fulfillment.utils.settings import STORE_DELIVERY_REQUIRES_APPROVAL
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

Coordinates = Tuple[float, float]

_TRANSITIONS = {
    CREATED: {ASSIGNED, CANCELLED},
    ASSIGNED: {IN_TRANSIT, CANCELLED},
    IN_TRANSIT: {DELIVERED, CANCELLED},
    DELIVERED: {CONFIRMED, CANCELLED},
    CONFIRMED: set(),
    CANCELLED: set(),
}

_EVENTS = {
    CREATED: "delivery.created",
    ASSIGNED: "delivery.assigned",
    IN_TRANSIT: "delivery.in_transit",
    DELIVERED: "delivery.delivered",
    CONFIRMED: "delivery.confirmed",
    CANCELLED: "delivery.cancelled",
}


def allowed_targets(kind: str, status: str) -> set:
    # paczka user-to-user nie ma kroku potwierdzenia, DELIVERED jest koncowy
    if kind == USER_TO_USER and status == DELIVERED:
        return set()
    return _TRANSITIONS.get(status, set())


def delivery_view(delivery: DeliveryModel, tracking_code: str | None = None) -> Dict[str, Any]:
    return {
        "id": delivery.id,
        "kind": delivery.kind,
        "order_id": delivery.order_id,
        "store_id": delivery.store_id,
        "sender_id": delivery.sender_id,
        "pickup": {"latitude": delivery.pickup_latitude, "longitude": delivery.pickup_longitude},
        "dropoff": {"latitude": delivery.dropoff_latitude, "longitude": delivery.dropoff_longitude},
        "recipient_name": delivery.recipient_name,
        "recipient_phone": delivery.recipient_phone,
        "special_instructions": delivery.special_instructions,
        "distance_km": delivery.distance_km,
        "eta_minutes": delivery.eta_minutes,
        "fee": delivery.fee,
        "carrier_id": delivery.carrier_id,
        "status": delivery.status,
        "cancel_reason": delivery.cancel_reason,
        "tracking_code": tracking_code,
        "created_at": as_utc(delivery.created_at),
        "assigned_at": as_utc(delivery.assigned_at),
        "picked_up_at": as_utc(delivery.picked_up_at),
        "delivered_at": as_utc(delivery.delivered_at),
        "confirmed_at": as_utc(delivery.confirmed_at),
        "cancelled_at": as_utc(delivery.cancelled_at),
    }


class DeliveryService:
    """
    Tworzenie dostaw i ich maszyna stanow.

    Kazde przejscie to CAS na oczekiwanym statusie (UPDATE ... WHERE status = :expected),
    ponawiany przez cas_retry; po commicie leci dokladnie jeden webhook.
    """

    def __init__(
        self,
        db: Session,
        catalog_client: CatalogClient,
        orders: OrderService,
        tracking: TrackingService,
        webhooks: WebhookService,
        notifications: NotificationService,
        fee_model: FeeModel | None = None,
    ):
        self.db = db
        self.repo = DeliveryRepo(db)
        self.carrier_repo = CarrierRepo(db)
        self.confirmation_repo = ConfirmationRepo(db)
        self.catalog = catalog_client
        self.orders = orders
        self.tracking = tracking
        self.webhooks = webhooks
        self.notifications = notifications
        self.fee_model = fee_model or FeeModel()

    # ---------- estimate ----------

    def _store_origin(self, store_id: int) -> Tuple[dict, Coordinates]:
        store = self.catalog.fetch_store(store_id)
        # sklep bez wlasciciela albo wspolrzednych jest niekompletny, odbioru nie da sie potwierdzic
        if not store or any(store.get(k) is None for k in ("owner_id", "latitude", "longitude")):
            raise StoreNotFound(details={"store_id": store_id})
        if store.get("is_active") is False:
            raise ValidationError("Store is not accepting deliveries", details={"store_id": store_id})
        return store, (float(store["latitude"]), float(store["longitude"]))

    def _estimate(self, origin: Coordinates, destination: Coordinates, items):
        try:
            return calculate_delivery_estimate(origin, destination, items, self.fee_model)
        except ValueError as e:
            raise ValidationError(str(e))

    def estimate_for_store(
        self,
        store_id: int,
        latitude: float,
        longitude: float,
        items: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        _, origin = self._store_origin(store_id)
        estimate = self._estimate(origin, (latitude, longitude), items)
        return {
            "store_id": store_id,
            "distance_km": round(estimate.distance_km, 3),
            "eta_minutes": round(estimate.eta_minutes, 1),
            "fee": estimate.fee,
        }

    # ---------- creation ----------

    def create_store_purchase_delivery(
        self,
        customer_id: int,
        order_id: int,
        store_id: int,
        customer_coordinates: Coordinates,
    ) -> Dict[str, Any]:
        order = self.orders.get_order_model(order_id)
        if order.owner_id != customer_id:
            raise NotAuthorized("Order belongs to another customer")
        if order.kind != CART_ORDER:
            raise ValidationError("Only cart orders can be delivered from a store")

        store, origin = self._store_origin(store_id)
        estimate = self._estimate(origin, customer_coordinates, order.items)

        delivery = DeliveryModel(
            kind=STORE_PURCHASE,
            order_id=order.id,
            active_order_id=order.id,
            store_id=store_id,
            # snapshot wlasciciela, potwierdzenie jest sprawdzane wzgledem niego
            store_owner_id=store["owner_id"],
            pickup_latitude=origin[0],
            pickup_longitude=origin[1],
            dropoff_latitude=customer_coordinates[0],
            dropoff_longitude=customer_coordinates[1],
            special_instructions=order.special_instructions,
            distance_km=estimate.distance_km,
            eta_minutes=estimate.eta_minutes,
            fee=estimate.fee,
            requires_approved_carrier=STORE_DELIVERY_REQUIRES_APPROVAL,
            status=CREATED,
        )
        code = self._insert(delivery, order)

        self._emit(delivery, code)
        self.notifications.notify(
            customer_id,
            "DELIVERY_CREATED",
            "Delivery requested",
            f"Your order {order.order_number} is waiting for a driver",
            {"delivery_id": delivery.id, "tracking_code": code},
        )
        return {
            "order": order_view(order),
            "delivery_request": delivery_view(delivery, code),
            "tracking_code": code,
        }

    def create_user_to_user_delivery(
        self,
        sender_id: int,
        pickup: Dict[str, Any],
        dropoff: Dict[str, Any],
        items: List[Dict[str, Any]],
        recipient_name: str | None = None,
        recipient_phone: str | None = None,
        special_instructions: str | None = None,
        order: OrderModel | None = None,
    ) -> Dict[str, Any]:
        if not items:
            raise ValidationError("Parcel must contain at least one item")

        origin = (pickup["latitude"], pickup["longitude"])
        destination = (dropoff["latitude"], dropoff["longitude"])
        estimate = self._estimate(origin, destination, items)

        if order is None:
            order = self.orders.build_parcel_order(sender_id, items, dropoff, special_instructions)
        elif order.owner_id != sender_id:
            raise NotAuthorized("Order belongs to another user")

        delivery = DeliveryModel(
            kind=USER_TO_USER,
            order_id=order.id,
            active_order_id=order.id,
            sender_id=sender_id,
            pickup_latitude=origin[0],
            pickup_longitude=origin[1],
            dropoff_latitude=destination[0],
            dropoff_longitude=destination[1],
            recipient_name=recipient_name,
            recipient_phone=recipient_phone,
            special_instructions=special_instructions,
            distance_km=estimate.distance_km,
            eta_minutes=estimate.eta_minutes,
            fee=estimate.fee,
            requires_approved_carrier=False,
            status=CREATED,
        )
        code = self._insert(delivery, order)

        self._emit(delivery, code)
        self.notifications.notify(
            sender_id,
            "DELIVERY_CREATED",
            "Parcel delivery requested",
            f"Tracking code: {code}",
            {"delivery_id": delivery.id, "tracking_code": code},
        )
        return {
            "order": order_view(order),
            "delivery_request": delivery_view(delivery, code),
            "tracking_code": code,
        }

    def _insert(self, delivery: DeliveryModel, order: OrderModel) -> str:
        """Dostawa + kod sledzenia (+ ewentualnie zamowienie paczki) w jednej transakcji."""
        try:
            if order.id is not None and self.repo.get_active_for_order(order.id):
                raise DeliveryAlreadyExists(details={"order_id": order.id})
            self.repo.create_delivery(delivery)
            code = self.tracking.issue(delivery.id)
            self.db.commit()
        except IntegrityError:
            # active_order_id jest unique, rownolegle utworzenie juz wygralo
            self.db.rollback()
            raise DeliveryAlreadyExists(details={"order_id": order.id})
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Delivery {delivery.id} ({delivery.kind}) created for order {order.id}, tracking {code}")
        return code

    # ---------- state machine ----------

    def assign_carrier(self, delivery_id: int, principal: Principal) -> Dict[str, Any]:
        def guard(delivery: DeliveryModel):
            self._check_carrier(principal, delivery)

        return self._transition(
            delivery_id,
            ASSIGNED,
            lambda now: {"carrier_id": principal.user_id, "assigned_at": now},
            guard,
        )

    def start_transit(self, delivery_id: int, principal: Principal) -> Dict[str, Any]:
        return self._transition(
            delivery_id,
            IN_TRANSIT,
            lambda now: {"picked_up_at": now},
            lambda d: self._check_assigned(principal, d),
        )

    def mark_delivered(self, delivery_id: int, principal: Principal) -> Dict[str, Any]:
        return self._transition(
            delivery_id,
            DELIVERED,
            lambda now: {"delivered_at": now},
            lambda d: self._check_assigned(principal, d),
        )

    def cancel(self, delivery_id: int, principal: Principal, reason: str | None = None) -> Dict[str, Any]:
        def guard(delivery: DeliveryModel):
            if principal.is_admin or delivery.carrier_id == principal.user_id:
                return
            order = self.orders.get_order_model(delivery.order_id)
            if order.owner_id != principal.user_id:
                raise NotAuthorized("Only the order owner, the assigned carrier or an admin can cancel")

        def close_confirmation(delivery: DeliveryModel, now) -> None:
            # oczekujace potwierdzenie wygasa w tej samej transakcji, bez przypomnien
            if self.confirmation_repo.expire_active_for_delivery(delivery.id, now):
                logger.info(f"Pending confirmation for delivery {delivery.id} closed by cancellation")

        return self._transition(
            delivery_id,
            CANCELLED,
            # zwolnienie active_order_id pozwala zamowic dostawe ponownie
            lambda now: {"cancelled_at": now, "cancel_reason": reason, "active_order_id": None},
            guard,
            close_confirmation,
        )

    def apply_confirmation(self, delivery_id: int, now) -> DeliveryModel:
        """
        DELIVERED -> CONFIRMED w transakcji potwierdzenia. Bez commitu i bez
        ponawiania: wywolujacy cofa cala transakcje przy StaleStateError.
        """
        delivery = self.get_delivery_model(delivery_id)
        return self._swap(delivery, CONFIRMED, {"confirmed_at": now})

    def get_delivery_model(self, delivery_id: int) -> DeliveryModel:
        delivery = self.repo.get_delivery(delivery_id)
        if not delivery:
            raise DeliveryNotFound(details={"delivery_id": delivery_id})
        return delivery

    def get_delivery(self, delivery_id: int, principal: Principal) -> Dict[str, Any]:
        delivery = self.get_delivery_model(delivery_id)
        self._check_participant(principal, delivery)
        return delivery_view(delivery, self.tracking.code_for(delivery.id))

    def get_statistics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        store_id: int | None = None,
    ) -> Dict[str, Any]:
        """Liczniki dostaw per status; ukonczone = DELIVERED + CONFIRMED."""
        by_status = self.repo.count_by_status(as_utc(start_date), as_utc(end_date), store_id)
        total = sum(by_status.values())
        completed = by_status.get(DELIVERED, 0) + by_status.get(CONFIRMED, 0)
        return {
            "total_deliveries": total,
            "completed_deliveries": completed,
            "pending_deliveries": by_status.get(CREATED, 0) + by_status.get(ASSIGNED, 0),
            "in_transit_deliveries": by_status.get(IN_TRANSIT, 0),
            "cancelled_deliveries": by_status.get(CANCELLED, 0),
            "by_status": by_status,
            "completion_rate": round(completed / total * 100, 2) if total else 0.0,
        }

    def emit(self, delivery: DeliveryModel) -> None:
        self._emit(delivery, self.tracking.code_for(delivery.id))

    def _transition(
        self,
        delivery_id: int,
        target: str,
        changes: Callable[[Any], dict],
        guard: Callable[[DeliveryModel], None] | None = None,
        effect: Callable[[DeliveryModel, Any], None] | None = None,
    ) -> Dict[str, Any]:
        try:
            delivery = self._apply(delivery_id, target, changes, guard, effect)
        except StaleStateError:
            raise ConflictError("Delivery was modified concurrently, try again", details={"delivery_id": delivery_id})

        code = self.tracking.code_for(delivery.id)
        logger.info(f"Delivery {delivery.id} -> {target}")
        self._emit(delivery, code)
        return delivery_view(delivery, code)

    @cas_retry()
    def _apply(self, delivery_id, target, changes, guard, effect=None) -> DeliveryModel:
        self.db.expire_all()
        try:
            delivery = self.get_delivery_model(delivery_id)
            self._check_transition(delivery, target)
            if guard:
                guard(delivery)
            now = utc_now()
            self._swap(delivery, target, changes(now))
            if effect:
                effect(delivery, now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(delivery)
        return delivery

    @staticmethod
    def _check_transition(delivery: DeliveryModel, target: str) -> None:
        if target not in allowed_targets(delivery.kind, delivery.status):
            raise InvalidStateTransition(
                f"Cannot move delivery from {delivery.status} to {target}",
                details={"delivery_id": delivery.id, "from": delivery.status, "to": target},
            )

    def _swap(self, delivery: DeliveryModel, target: str, changes: dict) -> DeliveryModel:
        current = delivery.status
        self._check_transition(delivery, target)

        rowcount = self.repo.update_status(delivery.id, current, {"status": target, **changes})
        if rowcount == 0:
            raise StaleStateError(f"delivery {delivery.id}")
        return delivery

    def _check_carrier(self, principal: Principal, delivery: DeliveryModel) -> CarrierProfile:
        if principal.role not in DRIVER_ROLES:
            raise DriverNotEligible("Role cannot carry deliveries", details={"role": principal.role})

        profile = self.carrier_repo.get_profile(principal.user_id, principal.role)
        if profile is None:
            raise DriverNotEligible("Carrier profile not found", details={"role": principal.role})

        # prowizja sprawdzana tak samo dla kazdego wariantu, DISPATCH tez
        if not profile.is_commission_current:
            raise CommissionOverdue(details={"user_id": principal.user_id})

        if profile.verification_status == REJECTED:
            raise DriverNotEligible("Carrier profile was rejected")

        if delivery.requires_approved_carrier and not profile.is_approved:
            raise DriverNotEligible(
                "Store deliveries require an approved carrier",
                details={"verification_status": profile.verification_status},
            )
        return profile

    def _check_participant(self, principal: Principal, delivery: DeliveryModel) -> None:
        if principal.is_admin or principal.user_id in (delivery.carrier_id, delivery.store_owner_id, delivery.sender_id):
            return
        order = self.orders.get_order_model(delivery.order_id)
        if order.owner_id != principal.user_id:
            raise NotAuthorized("Delivery belongs to another user")

    @staticmethod
    def _check_assigned(principal: Principal, delivery: DeliveryModel) -> None:
        if delivery.carrier_id != principal.user_id:
            raise NotAuthorized("Only the assigned carrier can update this delivery")

    def _emit(self, delivery: DeliveryModel, code: str | None) -> None:
        self.webhooks.publish(
            _EVENTS[delivery.status],
            delivery.id,
            {
                "kind": delivery.kind,
                "status": delivery.status,
                "orderId": delivery.order_id,
                "carrierId": delivery.carrier_id,
                "trackingCode": code,
            },
        )
