# fulfillment/data/models/delivery.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Float, Boolean, Text

from fulfillment.data.database import Base

STORE_PURCHASE = "STORE_PURCHASE"
USER_TO_USER = "USER_TO_USER"

CREATED = "CREATED"
ASSIGNED = "ASSIGNED"
IN_TRANSIT = "IN_TRANSIT"
DELIVERED = "DELIVERED"
CONFIRMED = "CONFIRMED"
CANCELLED = "CANCELLED"


class DeliveryModel(Base):
    __tablename__ = "delivery_requests"

    id = Column(Integer, primary_key=True)
    kind = Column(String, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    # order_id dopoki dostawa nie jest anulowana -> jedna aktywna dostawa na zamowienie
    active_order_id = Column(Integer, unique=True, nullable=True)

    # origin: sklep albo nadawca
    store_id = Column(Integer, nullable=True)
    store_owner_id = Column(Integer, nullable=True)
    sender_id = Column(Integer, nullable=True)
    pickup_latitude = Column(Float, nullable=False)
    pickup_longitude = Column(Float, nullable=False)
    dropoff_latitude = Column(Float, nullable=False)
    dropoff_longitude = Column(Float, nullable=False)
    recipient_name = Column(String, nullable=True)
    recipient_phone = Column(String, nullable=True)
    special_instructions = Column(Text, nullable=True)

    distance_km = Column(Float, nullable=False)
    eta_minutes = Column(Float, nullable=False)
    fee = Column(Numeric(10, 2), nullable=False)

    carrier_id = Column(Integer, nullable=True, index=True)
    requires_approved_carrier = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default=CREATED)
    cancel_reason = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
