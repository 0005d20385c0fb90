from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime

from fulfillment.data.database import Base


class TrackingRecordModel(Base):
    __tablename__ = "tracking_records"

    # kod nigdy nie jest usuwany ani uzywany ponownie
    code = Column(String, primary_key=True)
    delivery_id = Column(Integer, ForeignKey("delivery_requests.id"), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
