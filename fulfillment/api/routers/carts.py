# fulfillment/api/routers/carts.py
from fastapi import APIRouter, Depends

from fulfillment.api.deps import get_cart_service, get_checkout_validator, get_order_service, get_principal, require
from fulfillment.domain.permissions import Principal, CART_WRITE, ORDER_CREATE
from fulfillment.domain.schemas import (
    AddItemIn,
    UpdateItemIn,
    CartOut,
    CartItemOut,
    CartSummaryOut,
    CheckoutIn,
    OrderOut,
    ValidationResultOut,
)
from fulfillment.services.cart_service import CartService
from fulfillment.services.checkout_service import CheckoutValidator
from fulfillment.services.order_service import OrderService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def get_cart(
    principal: Principal = Depends(get_principal),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get_cart(principal.user_id)


@router.get("/summary", response_model=CartSummaryOut)
def get_summary(
    principal: Principal = Depends(get_principal),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get_summary(principal.user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: AddItemIn,
    principal: Principal = Depends(require(CART_WRITE)),
    svc: CartService = Depends(get_cart_service),
):
    return svc.add_item(principal.user_id, payload.product_id, payload.quantity)


@router.patch("/items/{item_id}", response_model=CartItemOut | None)
def update_item(
    item_id: int,
    payload: UpdateItemIn,
    principal: Principal = Depends(require(CART_WRITE)),
    svc: CartService = Depends(get_cart_service),
):
    """quantity <= 0 usuwa pozycje, wtedy odpowiedz to null."""
    return svc.update_item(principal.user_id, item_id, payload.quantity)


@router.delete("/items/{item_id}")
def remove_item(
    item_id: int,
    principal: Principal = Depends(require(CART_WRITE)),
    svc: CartService = Depends(get_cart_service),
):
    return svc.remove_item(principal.user_id, item_id)


@router.delete("", response_model=CartOut)
def clear_cart(
    principal: Principal = Depends(require(CART_WRITE)),
    svc: CartService = Depends(get_cart_service),
):
    return svc.clear(principal.user_id)


@router.post("/validate", response_model=ValidationResultOut)
def validate_cart(
    principal: Principal = Depends(require(ORDER_CREATE)),
    validator: CheckoutValidator = Depends(get_checkout_validator),
):
    """Wynik walidacji zawsze 200; lista problemow w issues."""
    return validator.validate(principal.user_id).to_dict()


@router.post("/checkout", response_model=OrderOut, status_code=201)
def checkout(
    payload: CheckoutIn,
    principal: Principal = Depends(require(ORDER_CREATE)),
    svc: OrderService = Depends(get_order_service),
):
    """
    Tworzy zamówienie z koszyka.
    Wysyła powiadomienie asynchronicznie.
    """
    return svc.convert_to_order(
        owner_id=principal.user_id,
        delivery_address=payload.delivery_address.model_dump(),
        payment_method_id=payload.payment_method_id,
        special_instructions=payload.special_instructions,
    )
