# fulfillment/repos/delivery_repo.py
from datetime import datetime
from typing import Dict

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from fulfillment.data.models.delivery import DeliveryModel


class DeliveryRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_delivery(self, delivery: DeliveryModel) -> DeliveryModel:
        self.db.add(delivery)
        self.db.flush()
        return delivery

    def get_delivery(self, delivery_id: int) -> DeliveryModel | None:
        return self.db.get(DeliveryModel, delivery_id)

    def get_active_for_order(self, order_id: int) -> DeliveryModel | None:
        return self.db.execute(
            select(DeliveryModel).where(DeliveryModel.active_order_id == order_id)
        ).scalar_one_or_none()

    def update_status(self, delivery_id: int, expected_status: str, new_data: dict) -> int:
        # CAS na statusie: dwa rownolegle przejscia z tego samego stanu, wygrywa jedno
        result = self.db.execute(
            update(DeliveryModel)
            .where(DeliveryModel.id == delivery_id, DeliveryModel.status == expected_status)
            .values(**new_data)
        )
        return result.rowcount

    def count_by_status(
        self,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        store_id: int | None = None,
    ) -> Dict[str, int]:
        # select status, count(*) ... group by status
        query = select(DeliveryModel.status, func.count(DeliveryModel.id)).group_by(DeliveryModel.status)
        if created_from is not None:
            query = query.where(DeliveryModel.created_at >= created_from)
        if created_to is not None:
            query = query.where(DeliveryModel.created_at <= created_to)
        if store_id is not None:
            query = query.where(DeliveryModel.store_id == store_id)
        return {status: count for status, count in self.db.execute(query).all()}
