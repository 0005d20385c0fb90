# fulfillment/services/cart_service.py
from decimal import Decimal
from typing import Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fulfillment.data.models.cart import CartModel, DRAFT, CONVERTED
from fulfillment.data.models.cart_item import CartItemModel
from fulfillment.domain.errors import (
    CartAlreadyConverted,
    CartItemNotFound,
    ConflictError,
    OutOfStock,
    ProductNotFound,
    ValidationError,
)
from fulfillment.repos.cart_repo import CartRepo
from fulfillment.services.catalog_client import CatalogClient
from fulfillment.services.lock_service import LockService, cart_lock_key
from fulfillment.utils.retry import StaleStateError, cas_retry
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)


def available_stock(product: dict) -> int:
    if not product.get("in_stock", True):
        return 0
    return int(product.get("stock_quantity", 0))


def _is_quantity(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CartService:
    """
    Koszyk uzytkownika (jeden nieskonwertowany na wlasciciela).

    Komendy (add, update, remove, clear) ida w zakresie locka per wlasciciel
    i podbijaja wersje koszyka przez compare-and-swap. Katalog jest pytany
    zanim lock zostanie wziety.
    """

    def __init__(
        self,
        db: Session,
        catalog_client: CatalogClient,
        lock_service: LockService,
    ):
        self.repo = CartRepo(db)
        self.catalog_client = catalog_client
        self.lock_service = lock_service

    #query - odczyt
    def get_cart(self, owner_id: int) -> Dict[str, Any]:
        return self._view(self._get_or_create_model(owner_id))

    def get_summary(self, owner_id: int) -> Dict[str, Any]:
        cart = self._view(self._get_or_create_model(owner_id))
        return {
            "item_count": len(cart["items"]),
            "total_items": sum(i["quantity"] for i in cart["items"]),
            "subtotal": cart["subtotal"],
            "items": cart["items"],
        }

    #commands
    def get_or_create(self, owner_id: int) -> Dict[str, Any]:
        return self.get_cart(owner_id)

    def add_item(self, owner_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if not _is_quantity(quantity) or quantity <= 0:
            raise ValidationError("Quantity must be a positive integer", details={"quantity": quantity})

        # HTTP do catalog-service (cena + stan), przed lockiem
        product = self.catalog_client.fetch_product(product_id)
        if not product:
            raise ProductNotFound(details={"product_id": product_id})

        price = Decimal(str(product["price"]))
        stock = available_stock(product)
        if stock < quantity:
            raise OutOfStock(details={"product_id": product_id, "requested": quantity, "available": stock})

        try:
            with self.lock_service.hold(cart_lock_key(owner_id)):
                cart = self._add_item_locked(owner_id, product_id, quantity, price, stock)
        except StaleStateError:
            raise ConflictError("Cart was modified concurrently, try again")

        logger.info(f"Produkt {product_id} x{quantity} dodany do koszyka {cart['cart_id']}, wersja {cart['version']}")
        return cart

    def update_item(self, owner_id: int, item_id: int, quantity: int) -> Dict[str, Any] | None:
        """quantity <= 0 usuwa pozycje i zwraca None."""
        if not _is_quantity(quantity):
            raise ValidationError("Quantity must be an integer", details={"quantity": quantity})

        item, _ = self._owned_item(owner_id, item_id)

        stock = None
        if quantity > item.quantity:
            product = self.catalog_client.fetch_product(item.product_id)
            stock = available_stock(product) if product else 0
            if quantity > stock:
                raise OutOfStock(details={"product_id": item.product_id, "requested": quantity, "available": stock})

        try:
            with self.lock_service.hold(cart_lock_key(owner_id)):
                return self._update_item_locked(owner_id, item_id, quantity, stock)
        except StaleStateError:
            raise ConflictError("Cart was modified concurrently, try again")

    def remove_item(self, owner_id: int, item_id: int) -> Dict[str, Any]:
        self._owned_item(owner_id, item_id)

        try:
            with self.lock_service.hold(cart_lock_key(owner_id)):
                return self._update_item_locked(owner_id, item_id, 0, None) or {"success": True}
        except StaleStateError:
            raise ConflictError("Cart was modified concurrently, try again")

    def clear(self, owner_id: int) -> Dict[str, Any]:
        try:
            with self.lock_service.hold(cart_lock_key(owner_id)):
                return self._clear_locked(owner_id)
        except StaleStateError:
            raise ConflictError("Cart was modified concurrently, try again")

    @cas_retry()
    def _add_item_locked(self, owner_id: int, product_id: int, quantity: int, price: Decimal, stock: int):
        self.repo.expire()
        cart = self._get_or_create_model(owner_id)

        try:
            existing = self.repo.get_cart_item(cart.id, product_id)
            current = existing.quantity if existing else 0

            if current + quantity > stock:
                raise OutOfStock(
                    details={"product_id": product_id, "requested": current + quantity, "available": stock}
                )

            if existing:
                self.repo.increment_item_quantity(existing.id, quantity)
            else:
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=cart.id,
                        product_id=product_id,
                        quantity=quantity,
                        unit_price=price,
                    )
                )

            self._bump_version(cart)
            self.repo.commit()
        except IntegrityError:
            # ta sama pozycja wstawiona rownolegle (u_cart_product), ponow jako inkrement
            self.repo.rollback()
            raise StaleStateError(f"cart {cart.id}")
        except Exception:
            self.repo.rollback()
            raise

        return self._view(cart)

    @cas_retry()
    def _update_item_locked(self, owner_id: int, item_id: int, quantity: int, stock: int | None):
        self.repo.expire()
        item, cart = self._owned_item(owner_id, item_id)

        try:
            if quantity <= 0:
                self.repo.delete_cart_item(item.id)
                logger.info(f"Usunieto pozycje {item_id} z koszyka {cart.id}")
            else:
                if stock is not None and quantity > stock:
                    raise OutOfStock(details={"product_id": item.product_id, "requested": quantity, "available": stock})
                self.repo.set_item_quantity(item.id, quantity)

            self._bump_version(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        if quantity <= 0:
            return None

        self.repo.expire()
        return self._item_view(self.repo.get_item(item_id))

    @cas_retry()
    def _clear_locked(self, owner_id: int):
        self.repo.expire()
        cart = self._get_or_create_model(owner_id)

        try:
            self.repo.delete_cart_items(cart.id)
            self._bump_version(cart)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Koszyk {cart.id} wyczyszczony")
        return self._view(cart)

    def _bump_version(self, cart: CartModel) -> None:
        # Optimistic locking, kazda mutacja cofa koszyk do DRAFT
        # update carts set version = v + 1 where id = :id and version = v
        old_version = cart.version
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=old_version,
            new_data={"version": old_version + 1, "status": DRAFT},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise StaleStateError(f"cart {cart.id} version {old_version}")

    def _get_or_create_model(self, owner_id: int) -> CartModel:
        cart = self.repo.get_active_cart_by_owner(owner_id)
        if cart:
            return cart

        try:
            cart = self.repo.create_cart(
                CartModel(owner_id=owner_id, active_owner_id=owner_id, status=DRAFT, version=1)
            )
            self.repo.commit()
        except IntegrityError:
            # inny request utworzyl koszyk w miedzyczasie
            self.repo.rollback()
            cart = self.repo.get_active_cart_by_owner(owner_id)
            if cart is None:
                raise
            return cart

        logger.info(f"Utworzono nowy koszyk {cart.id} dla uzytkownika {owner_id}")
        return cart

    def _owned_item(self, owner_id: int, item_id: int):
        item = self.repo.get_item(item_id)
        cart = self.repo.get_cart(item.cart_id) if item else None

        if not item or cart.owner_id != owner_id:
            raise CartItemNotFound(details={"item_id": item_id})

        if cart.status == CONVERTED:
            raise CartAlreadyConverted(details={"cart_id": cart.id})

        return item, cart

    def _view(self, cart: CartModel) -> Dict[str, Any]:
        self.repo.expire()
        items = self.repo.get_cart_items(cart.id)
        subtotal = sum((i.unit_price * i.quantity for i in items), Decimal("0.00"))

        #dict przeksztalcany w jsona
        return {
            "cart_id": cart.id,
            "owner_id": cart.owner_id,
            "status": cart.status,
            "version": cart.version,
            "items": [self._item_view(i) for i in items],
            "subtotal": subtotal,
        }

    @staticmethod
    def _item_view(item: CartItemModel) -> Dict[str, Any]:
        return {
            "item_id": item.id,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
        }
