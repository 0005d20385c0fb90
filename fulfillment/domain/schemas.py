# fulfillment/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """JSON w camelCase, w Pythonie snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------- cart ----------

class AddItemIn(CamelModel):
    """Schema dla dodawania produktu do koszyka."""

    product_id: int = Field(..., gt=0, description="ID produktu (musi być > 0)")
    quantity: int = Field(..., gt=0, description="Ilość produktu (musi być > 0)")


class UpdateItemIn(CamelModel):
    # 0 albo mniej usuwa pozycje
    quantity: int


class CartItemOut(CamelModel):
    item_id: int
    product_id: int
    quantity: int
    unit_price: Decimal


class CartOut(CamelModel):
    cart_id: int
    owner_id: int
    status: str
    version: int
    items: List[CartItemOut]
    subtotal: Decimal


class CartSummaryOut(CamelModel):
    item_count: int
    total_items: int
    subtotal: Decimal
    items: List[CartItemOut]


class LineIssueOut(CamelModel):
    item_id: int
    product_id: int
    code: str
    message: str
    requested: int | None = None
    available: int | None = None
    cart_price: Decimal | None = None
    current_price: Decimal | None = None


class ValidationResultOut(CamelModel):
    valid: bool
    cart_id: int
    cart_version: int
    subtotal: Decimal
    issues: List[LineIssueOut] = []


# ---------- orders ----------

class AddressIn(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)


class CheckoutIn(CamelModel):
    """Schema dla tworzenia zamówienia z koszyka."""

    delivery_address: AddressIn
    payment_method_id: str = Field(..., min_length=1)
    special_instructions: str | None = Field(None, max_length=500)


class AddressOut(CamelModel):
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    city: str | None = None


class OrderItemOut(CamelModel):
    product_id: int | None = None
    name: str | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class OrderOut(CamelModel):
    id: int
    order_number: str
    owner_id: int
    kind: str
    cart_id: int | None = None
    subtotal: Decimal
    delivery_address: AddressOut
    payment_method_id: str | None = None
    special_instructions: str | None = None
    items: List[OrderItemOut]
    created_at: datetime | None = None


# ---------- delivery ----------

class CoordinatesIn(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class LocationIn(CoordinatesIn):
    address: str | None = Field(None, max_length=255)


class EstimateItemIn(CamelModel):
    product_id: int | None = None
    quantity: int = Field(..., gt=0)


class EstimateIn(CamelModel):
    store_id: int = Field(..., gt=0)
    customer_latitude: float = Field(..., ge=-90, le=90)
    customer_longitude: float = Field(..., ge=-180, le=180)
    items: List[EstimateItemIn] = []


class EstimateOut(CamelModel):
    distance_km: float
    eta_minutes: float
    fee: Decimal


class StorePurchaseIn(CamelModel):
    order_id: int = Field(..., gt=0)
    store_id: int = Field(..., gt=0)
    customer_coordinates: CoordinatesIn


class ParcelItemIn(CamelModel):
    name: str = Field("Parcel", max_length=100)
    quantity: int = Field(1, gt=0)
    value: Decimal | None = Field(None, ge=0)


class UserToUserIn(CamelModel):
    pickup: LocationIn
    dropoff: LocationIn
    items: List[ParcelItemIn] = Field(default_factory=lambda: [ParcelItemIn()], min_length=1)
    recipient_name: str | None = Field(None, max_length=100)
    recipient_phone: str | None = Field(None, max_length=30)
    special_instructions: str | None = Field(None, max_length=500)


class PointOut(CamelModel):
    latitude: float
    longitude: float


class DeliveryOut(CamelModel):
    id: int
    kind: str
    order_id: int
    store_id: int | None = None
    sender_id: int | None = None
    pickup: PointOut
    dropoff: PointOut
    recipient_name: str | None = None
    recipient_phone: str | None = None
    special_instructions: str | None = None
    distance_km: float
    eta_minutes: float
    fee: Decimal
    carrier_id: int | None = None
    status: str
    cancel_reason: str | None = None
    tracking_code: str | None = None
    created_at: datetime | None = None
    assigned_at: datetime | None = None
    picked_up_at: datetime | None = None
    delivered_at: datetime | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None


class DeliveryCreatedOut(CamelModel):
    order: OrderOut
    delivery_request: DeliveryOut
    tracking_code: str


class CancelIn(CamelModel):
    reason: str | None = Field(None, max_length=255)


class DeliveryStatisticsOut(CamelModel):
    total_deliveries: int
    completed_deliveries: int
    pending_deliveries: int
    in_transit_deliveries: int
    cancelled_deliveries: int
    by_status: Dict[str, int]
    completion_rate: float


class TrackingOut(CamelModel):
    tracking_code: str
    kind: str
    status: str
    distance_km: float
    eta_minutes: float
    fee: Decimal
    carrier_assigned: bool
    recipient_name: str | None = None
    estimated_delivery_time: datetime | None = None
    created_at: datetime | None = None
    assigned_at: datetime | None = None
    picked_up_at: datetime | None = None
    delivered_at: datetime | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None


# ---------- confirmation ----------

class ConfirmIn(CamelModel):
    confirmation_token: str = Field(..., min_length=1)


class ConfirmationOut(CamelModel):
    token: str
    delivery_id: int
    status: str
    issued_at: datetime | None = None
    expires_at: datetime
    confirmed_by: int | None = None
    confirmed_at: datetime | None = None
    reminder_sent_at: datetime | None = None
    expired_at: datetime | None = None


class ConfirmedOut(CamelModel):
    confirmation: ConfirmationOut
    delivery_request: DeliveryOut


class ConfirmationIssuedOut(CamelModel):
    # bez tokenu, token dostaje tylko wlasciciel sklepu w powiadomieniu
    delivery_id: int
    status: str
    expires_at: datetime


class DeliveredOut(CamelModel):
    delivery_request: DeliveryOut
    confirmation: ConfirmationIssuedOut | None = None


class RemindersSentOut(CamelModel):
    sent: int
