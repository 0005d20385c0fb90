# fulfillment/data/models/confirmation.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime

from fulfillment.data.database import Base

ISSUED = "ISSUED"
CONFIRMED = "CONFIRMED"
EXPIRED = "EXPIRED"


class ConfirmationModel(Base):
    __tablename__ = "purchase_confirmations"

    id = Column(Integer, primary_key=True)
    token = Column(String, unique=True, nullable=False)
    delivery_id = Column(Integer, ForeignKey("delivery_requests.id"), nullable=False, index=True)
    # delivery_id dopoki potwierdzenie nie wygaslo -> max jedno niewygasle na dostawe
    active_delivery_id = Column(Integer, unique=True, nullable=True)

    status = Column(String, nullable=False, default=ISSUED)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_by = Column(Integer, nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)
