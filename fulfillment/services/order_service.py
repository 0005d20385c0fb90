# fulfillment/services/order_service.py
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.data.models.cart import CONVERTED
from fulfillment.data.models.order import OrderModel, CART_ORDER, PARCEL_ORDER
from fulfillment.data.models.order_item import OrderItemModel
from fulfillment.domain.errors import (
    CartAlreadyConverted,
    CheckoutFailed,
    ConflictError,
    NotAuthorized,
    OrderNotFound,
)
from fulfillment.repos.cart_repo import CartRepo
from fulfillment.repos.order_repo import OrderRepo
from fulfillment.services.checkout_service import CheckoutValidator, ValidationResult
from fulfillment.services.lock_service import LockService, cart_lock_key
from fulfillment.services.notification_service import NotificationService
from fulfillment.services.webhook_service import WebhookService
from fulfillment.utils.clock import utc_now
from fulfillment.utils.retry import StaleStateError, cas_retry
from fulfillment.utils.tokens import TokenGenerator
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


def order_view(order: OrderModel) -> Dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "owner_id": order.owner_id,
        "kind": order.kind,
        "cart_id": order.cart_id,
        "subtotal": order.subtotal,
        "delivery_address": {
            "latitude": order.delivery_latitude,
            "longitude": order.delivery_longitude,
            "address": order.delivery_address,
            "city": order.delivery_city,
        },
        "payment_method_id": order.payment_method_id,
        "special_instructions": order.special_instructions,
        "items": [
            {
                "product_id": i.product_id,
                "name": i.name,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
                "total_price": i.total_price,
            }
            for i in order.items
        ],
        "created_at": order.created_at,
    }


class OrderService:
    """
    Zamiana zwalidowanego koszyka na niezmienne zamowienie.

    Flip koszyka na CONVERTED i zapis zamowienia ida w jednej transakcji.
    Konwersja nie jest idempotentna: powtorka konczy sie CartAlreadyConverted.
    """

    def __init__(
        self,
        db: Session,
        validator: CheckoutValidator,
        lock_service: LockService,
        webhooks: WebhookService,
        notifications: NotificationService,
        tokens: TokenGenerator | None = None,
    ):
        self.cart_repo = CartRepo(db)
        self.repo = OrderRepo(db)
        self.validator = validator
        self.lock_service = lock_service
        self.webhooks = webhooks
        self.notifications = notifications
        self.tokens = tokens or TokenGenerator()

    def convert_to_order(
        self,
        owner_id: int,
        delivery_address: Dict[str, Any],
        payment_method_id: str,
        special_instructions: str | None = None,
    ) -> Dict[str, Any]:
        try:
            order = self._convert(owner_id, delivery_address, payment_method_id, special_instructions)
        except StaleStateError:
            raise ConflictError("Cart changed during checkout, try again")

        logger.info(f"Order {order.id} created from cart {order.cart_id}")

        view = order_view(order)
        self.webhooks.publish(
            "order.created",
            order.id,
            {
                "orderNumber": order.order_number,
                "ownerId": owner_id,
                "subtotal": order.subtotal,
                "items": len(view["items"]),
            },
        )
        self.notifications.send_order_notification(owner_id, order.id, order.order_number)
        return view

    @cas_retry()
    def _convert(self, owner_id, delivery_address, payment_method_id, special_instructions) -> OrderModel:
        result = self.validator.validate(owner_id)
        if not result.valid:
            raise CheckoutFailed(
                details={"cart_id": result.cart_id, "issues": result.to_dict()["issues"]},
            )

        with self.lock_service.hold(cart_lock_key(owner_id)):
            return self._persist(owner_id, result, delivery_address, payment_method_id, special_instructions)

    def _persist(
        self,
        owner_id: int,
        result: ValidationResult,
        delivery_address: Dict[str, Any],
        payment_method_id: str,
        special_instructions: str | None,
    ) -> OrderModel:
        self.cart_repo.expire()
        items = self.cart_repo.get_cart_items(result.cart_id)

        try:
            # CAS na wersji z walidacji: kazda zmiana koszyka po walidacji podbila wersje
            rowcount = self.cart_repo.update_cart_version(
                cart_id=result.cart_id,
                old_version=result.cart_version,
                new_data={
                    "status": CONVERTED,
                    "active_owner_id": None,
                    "version": result.cart_version + 1,
                    "converted_at": utc_now(),
                },
            )
            if rowcount == 0:
                self.cart_repo.rollback()
                cart = self.cart_repo.get_cart(result.cart_id)
                if cart and cart.status == CONVERTED:
                    raise CartAlreadyConverted(details={"cart_id": result.cart_id})
                raise StaleStateError(f"cart {result.cart_id}")

            order = OrderModel(
                order_number=self.tokens.order_number(),
                owner_id=owner_id,
                kind=CART_ORDER,
                cart_id=result.cart_id,
                subtotal=sum((i.unit_price * i.quantity for i in items), Decimal("0.00")),
                delivery_latitude=delivery_address.get("latitude"),
                delivery_longitude=delivery_address.get("longitude"),
                delivery_address=delivery_address.get("address"),
                delivery_city=delivery_address.get("city"),
                payment_method_id=payment_method_id,
                special_instructions=special_instructions,
                items=[
                    OrderItemModel(
                        product_id=i.product_id,
                        quantity=i.quantity,
                        unit_price=i.unit_price,
                        total_price=i.unit_price * i.quantity,
                    )
                    for i in items
                ],
            )
            self.repo.create_order(order)
            self.cart_repo.commit()
        except IntegrityError:
            # orders.cart_id jest unique, rownolegla konwersja juz wygrala
            self.cart_repo.rollback()
            raise CartAlreadyConverted(details={"cart_id": result.cart_id})
        except Exception:
            self.cart_repo.rollback()
            raise

        return order

    def build_parcel_order(
        self,
        sender_id: int,
        items: List[Dict[str, Any]],
        dropoff: Dict[str, Any],
        special_instructions: str | None = None,
    ) -> OrderModel:
        """
        Zamowienie dla paczki user-to-user. Tylko flush, commit robi
        transakcja tworzaca dostawe.
        """
        order = OrderModel(
            order_number=self.tokens.order_number(),
            owner_id=sender_id,
            kind=PARCEL_ORDER,
            subtotal=Decimal("0.00"),  # wartosc paczki nie jest pobierana, tylko oplata za dostawe
            delivery_latitude=dropoff.get("latitude"),
            delivery_longitude=dropoff.get("longitude"),
            delivery_address=dropoff.get("address"),
            special_instructions=special_instructions,
            items=[
                OrderItemModel(
                    name=i.get("name"),
                    quantity=i["quantity"],
                    unit_price=Decimal(str(i.get("value") or 0)),
                    total_price=Decimal(str(i.get("value") or 0)) * i["quantity"],
                )
                for i in items
            ],
        )
        return self.repo.create_order(order)

    def get_order_model(self, order_id: int) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFound(details={"order_id": order_id})
        return order

    def get_order(self, order_id: int, owner_id: int, is_admin: bool = False) -> Dict[str, Any]:
        order = self.get_order_model(order_id)

        if order.owner_id != owner_id and not is_admin:
            raise NotAuthorized("Access to order denied")

        return order_view(order)
