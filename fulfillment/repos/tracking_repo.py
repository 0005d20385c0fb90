from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment.data.models.tracking import TrackingRecordModel


class TrackingRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_record(self, code: str) -> TrackingRecordModel | None:
        return self.db.get(TrackingRecordModel, code)

    def get_record_for_delivery(self, delivery_id: int) -> TrackingRecordModel | None:
        return self.db.execute(
            select(TrackingRecordModel).where(TrackingRecordModel.delivery_id == delivery_id)
        ).scalar_one_or_none()

    def create_record(self, record: TrackingRecordModel) -> TrackingRecordModel:
        self.db.add(record)
        self.db.flush()
        return record
