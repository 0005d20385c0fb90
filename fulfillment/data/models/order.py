from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, Float, Text
from sqlalchemy.orm import relationship

from fulfillment.data.database import Base

CART_ORDER = "CART"
PARCEL_ORDER = "PARCEL"


class OrderModel(Base):
    """Niezmienny snapshot koszyka w chwili checkoutu, nigdy nie aktualizowany."""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_number = Column(String, unique=True, nullable=False)
    owner_id = Column(Integer, nullable=False, index=True)
    kind = Column(String, nullable=False, default=CART_ORDER)
    cart_id = Column(Integer, ForeignKey("carts.id"), unique=True, nullable=True)

    subtotal = Column(Numeric(10, 2), nullable=False)
    delivery_latitude = Column(Float, nullable=True)
    delivery_longitude = Column(Float, nullable=True)
    delivery_address = Column(String, nullable=True)
    delivery_city = Column(String, nullable=True)
    payment_method_id = Column(String, nullable=True)
    special_instructions = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
