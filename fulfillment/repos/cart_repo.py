# fulfillment/repos/cart_repo.py
from typing import List

from sqlalchemy import select, update, delete
from sqlalchemy.orm import Session

from fulfillment.data.models.cart import CartModel
from fulfillment.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_cart(self, cart_id: int) -> CartModel | None:
        return self.db.get(CartModel, cart_id)

    def get_active_cart_by_owner(self, owner_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.active_owner_id == owner_id)
        ).scalar_one_or_none()

    def get_latest_cart_by_owner(self, owner_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(CartModel.owner_id == owner_id)
            .order_by(CartModel.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def get_cart_items(self, cart_id: int) -> List[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.id)
            ).scalars()
        )

    def get_cart_item(self, cart_id: int, product_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    def get_item(self, item_id: int) -> CartItemModel | None:
        return self.db.get(CartItemModel, item_id)

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        self.db.flush()
        return item

    def increment_item_quantity(self, item_id: int, delta: int) -> int:
        # quantity = quantity + delta liczone w bazie, rownolegle inkrementy sie nie gubia
        result = self.db.execute(
            update(CartItemModel)
            .where(CartItemModel.id == item_id)
            .values(quantity=CartItemModel.quantity + delta)
        )
        return result.rowcount

    def set_item_quantity(self, item_id: int, quantity: int) -> int:
        result = self.db.execute(
            update(CartItemModel)
            .where(CartItemModel.id == item_id)
            .values(quantity=quantity)
        )
        return result.rowcount

    def delete_cart_item(self, item_id: int) -> int:
        result = self.db.execute(delete(CartItemModel).where(CartItemModel.id == item_id))
        return result.rowcount

    def delete_cart_items(self, cart_id: int) -> int:
        result = self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))
        return result.rowcount

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        # update carts set ... where id = :id and version = :old_version
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
        )
        return result.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    def expire(self):
        # wymus ponowny odczyt z bazy (identity map moze trzymac stare wartosci)
        self.db.expire_all()
