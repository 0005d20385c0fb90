# fulfillment/data/models/cart.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from fulfillment.data.database import Base

DRAFT = "DRAFT"
VALIDATED = "VALIDATED"
CONVERTED = "CONVERTED"


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    # owner_id dopoki koszyk nie jest skonwertowany, potem NULL
    # unique -> maksymalnie jeden aktywny koszyk na uzytkownika
    active_owner_id = Column(Integer, unique=True, nullable=True)

    status = Column(String, nullable=False, default=DRAFT)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    converted_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
    )
