# fulfillment/repos/order_repo.py
from sqlalchemy.orm import Session

from fulfillment.data.models.order import OrderModel


class OrderRepo:
    """Zamowienia sa tylko wstawiane i czytane, brak metod aktualizacji."""

    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)
