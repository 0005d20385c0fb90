# fulfillment/services/checkout_service.py
"""
Rewalidacja koszyka w chwili checkoutu.

Ceny i stany mogly sie zmienic od add_item, wiec kazda pozycja jest
sprawdzana ponownie w katalogu. Wynik jest albo w calosci pozytywny
(koszyk -> VALIDATED przez CAS na wersji), albo nic nie jest zapisywane.
"""
from dataclasses import dataclass, field, asdict
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from fulfillment.data.models.cart import VALIDATED, CONVERTED
from fulfillment.domain.errors import CartAlreadyConverted, CartEmpty, ConflictError
from fulfillment.repos.cart_repo import CartRepo
from fulfillment.services.cart_service import available_stock
from fulfillment.services.catalog_client import CatalogClient
from fulfillment.utils.retry import StaleStateError, cas_retry
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

OUT_OF_STOCK = "OUT_OF_STOCK"
PRICE_CHANGED = "PRICE_CHANGED"
PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"

_CENT = Decimal("0.01")


@dataclass
class LineIssue:
    item_id: int
    product_id: int
    code: str
    message: str
    requested: int | None = None
    available: int | None = None
    cart_price: Decimal | None = None
    current_price: Decimal | None = None


@dataclass
class ValidationResult:
    valid: bool
    cart_id: int
    cart_version: int
    subtotal: Decimal
    issues: List[LineIssue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


class CheckoutValidator:
    def __init__(self, db: Session, catalog_client: CatalogClient):
        self.repo = CartRepo(db)
        self.catalog_client = catalog_client

    def validate(self, owner_id: int) -> ValidationResult:
        try:
            return self._validate(owner_id)
        except StaleStateError:
            raise ConflictError("Cart was modified during validation, try again")

    @cas_retry()
    def _validate(self, owner_id: int) -> ValidationResult:
        self.repo.expire()
        cart = self.repo.get_active_cart_by_owner(owner_id)

        if cart is None:
            latest = self.repo.get_latest_cart_by_owner(owner_id)
            if latest and latest.status == CONVERTED:
                raise CartAlreadyConverted(details={"cart_id": latest.id})
            raise CartEmpty()

        items = self.repo.get_cart_items(cart.id)
        if not items:
            raise CartEmpty(details={"cart_id": cart.id})

        version = cart.version
        issues: List[LineIssue] = []

        for item in items:
            issues.extend(self._check_line(item))

        subtotal = sum((i.unit_price * i.quantity for i in items), Decimal("0.00"))

        if issues:
            # nic nie zapisujemy, koszyk zostaje jak byl
            self.repo.rollback()
            logger.info(f"Walidacja koszyka {cart.id} nieudana: {[i.code for i in issues]}")
            return ValidationResult(
                valid=False,
                cart_id=cart.id,
                cart_version=version,
                subtotal=subtotal,
                issues=issues,
            )

        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=version,
            new_data={"status": VALIDATED, "version": version + 1},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise StaleStateError(f"cart {cart.id} version {version}")

        self.repo.commit()
        logger.info(f"Koszyk {cart.id} zwalidowany, wersja {version + 1}")

        return ValidationResult(
            valid=True,
            cart_id=cart.id,
            cart_version=version + 1,
            subtotal=subtotal,
        )

    def _check_line(self, item) -> List[LineIssue]:
        product = self.catalog_client.fetch_product(item.product_id)

        if not product:
            return [
                LineIssue(
                    item_id=item.id,
                    product_id=item.product_id,
                    code=PRODUCT_UNAVAILABLE,
                    message=f"Product {item.product_id} no longer exists",
                )
            ]

        issues = []
        stock = available_stock(product)
        if stock < item.quantity:
            issues.append(
                LineIssue(
                    item_id=item.id,
                    product_id=item.product_id,
                    code=OUT_OF_STOCK,
                    message=f"Insufficient stock for {product.get('name', item.product_id)}. Available: {stock}",
                    requested=item.quantity,
                    available=stock,
                )
            )

        current_price = Decimal(str(product["price"])).quantize(_CENT)
        cart_price = Decimal(item.unit_price).quantize(_CENT)
        if current_price != cart_price:
            issues.append(
                LineIssue(
                    item_id=item.id,
                    product_id=item.product_id,
                    code=PRICE_CHANGED,
                    message=f"Price of {product.get('name', item.product_id)} changed from {cart_price} to {current_price}",
                    cart_price=cart_price,
                    current_price=current_price,
                )
            )

        return issues
