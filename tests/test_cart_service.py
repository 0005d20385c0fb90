"""
Tests for CartService: line merging, stock checks, ownership and the
per-owner lock scope.
"""
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fulfillment.data.database import Base
from fulfillment.data.models.cart import DRAFT, VALIDATED
from fulfillment.domain.errors import (
    CartAlreadyConverted,
    CartItemNotFound,
    CatalogUnavailable,
    ConflictError,
    OutOfStock,
    ProductNotFound,
    ValidationError,
)
from fulfillment.services.cart_service import CartService
from fulfillment.services.lock_service import cart_lock_key


class TestAddItem:
    def test_first_add_creates_cart_with_catalog_price(self, services):
        cart = services.carts.add_item(1, 1, 2)

        assert cart["owner_id"] == 1
        assert cart["status"] == DRAFT
        assert len(cart["items"]) == 1
        assert cart["items"][0]["unit_price"] == Decimal("10.00")
        assert cart["subtotal"] == Decimal("20.00")

    def test_same_product_is_summed_into_one_line(self, services):
        services.carts.add_item(1, 1, 2)
        cart = services.carts.add_item(1, 1, 3)

        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 5

    def test_every_mutation_bumps_version(self, services):
        first = services.carts.add_item(1, 1, 1)
        second = services.carts.add_item(1, 2, 1)

        assert second["version"] == first["version"] + 1

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2"])
    def test_rejects_non_positive_or_non_integer_quantity(self, services, quantity):
        with pytest.raises(ValidationError):
            services.carts.add_item(1, 1, quantity)

    def test_unknown_product(self, services):
        with pytest.raises(ProductNotFound):
            services.carts.add_item(1, 999, 1)

    def test_out_of_stock_for_single_add(self, services):
        with pytest.raises(OutOfStock) as exc:
            services.carts.add_item(1, 2, 4)

        assert exc.value.details["available"] == 3

    def test_out_of_stock_counts_quantity_already_in_cart(self, services):
        services.carts.add_item(1, 2, 2)

        with pytest.raises(OutOfStock):
            services.carts.add_item(1, 2, 2)

        cart = services.carts.get_cart(1)
        assert cart["items"][0]["quantity"] == 2

    def test_product_flagged_out_of_stock(self, services, catalog):
        catalog.add_product(3, stock=50, in_stock=False)

        with pytest.raises(OutOfStock):
            services.carts.add_item(1, 3, 1)

    def test_catalog_outage_is_reported(self, services, catalog):
        catalog.unavailable = True

        with pytest.raises(CatalogUnavailable):
            services.carts.add_item(1, 1, 1)

    def test_lock_is_released_after_mutation(self, services, lock_service):
        services.carts.add_item(1, 1, 1)

        assert lock_service.held == {}

    def test_busy_lock_gives_conflict(self, services, lock_service):
        lock_service.held[cart_lock_key(1)] = "someone-else"

        with pytest.raises(ConflictError):
            services.carts.add_item(1, 1, 1)


class TestUpdateAndRemove:
    def test_update_sets_quantity(self, services):
        cart = services.carts.add_item(1, 1, 1)
        item_id = cart["items"][0]["item_id"]

        item = services.carts.update_item(1, item_id, 4)

        assert item["quantity"] == 4

    def test_update_to_zero_removes_line(self, services):
        cart = services.carts.add_item(1, 1, 1)
        item_id = cart["items"][0]["item_id"]

        assert services.carts.update_item(1, item_id, 0) is None
        assert services.carts.get_cart(1)["items"] == []

    def test_negative_quantity_also_removes_line(self, services):
        cart = services.carts.add_item(1, 1, 1)
        item_id = cart["items"][0]["item_id"]

        assert services.carts.update_item(1, item_id, -3) is None
        assert services.carts.get_cart(1)["items"] == []

    def test_update_beyond_stock(self, services):
        cart = services.carts.add_item(1, 2, 1)
        item_id = cart["items"][0]["item_id"]

        with pytest.raises(OutOfStock):
            services.carts.update_item(1, item_id, 4)

    def test_other_owner_cannot_touch_item(self, services):
        cart = services.carts.add_item(1, 1, 1)
        item_id = cart["items"][0]["item_id"]

        with pytest.raises(CartItemNotFound):
            services.carts.update_item(2, item_id, 3)
        with pytest.raises(CartItemNotFound):
            services.carts.remove_item(2, item_id)

    def test_remove_item(self, services):
        cart = services.carts.add_item(1, 1, 1)
        services.carts.add_item(1, 2, 1)

        result = services.carts.remove_item(1, cart["items"][0]["item_id"])

        assert result == {"success": True}
        remaining = services.carts.get_cart(1)["items"]
        assert [i["product_id"] for i in remaining] == [2]

    def test_clear(self, services):
        services.carts.add_item(1, 1, 1)
        services.carts.add_item(1, 2, 1)

        cart = services.carts.clear(1)

        assert cart["items"] == []
        assert cart["subtotal"] == Decimal("0.00")


class TestCartLifecycle:
    def test_get_or_create_is_idempotent(self, services):
        first = services.carts.get_or_create(7)
        second = services.carts.get_or_create(7)

        assert first["cart_id"] == second["cart_id"]

    def test_summary(self, services):
        services.carts.add_item(1, 1, 2)
        services.carts.add_item(1, 2, 1)

        summary = services.carts.get_summary(1)

        assert summary["item_count"] == 2
        assert summary["total_items"] == 3
        assert summary["subtotal"] == Decimal("24.50")

    def test_mutation_after_validation_returns_cart_to_draft(self, services):
        services.carts.add_item(1, 1, 1)
        services.validator.validate(1)
        assert services.carts.get_cart(1)["status"] == VALIDATED

        cart = services.carts.add_item(1, 1, 1)

        assert cart["status"] == DRAFT

    def test_converted_cart_items_are_frozen(self, services):
        cart = services.carts.add_item(1, 1, 1)
        item_id = cart["items"][0]["item_id"]
        services.orders.convert_to_order(1, {"latitude": 52.0, "longitude": 21.0}, "pm_1")

        with pytest.raises(CartAlreadyConverted):
            services.carts.update_item(1, item_id, 2)
        with pytest.raises(CartAlreadyConverted):
            services.carts.remove_item(1, item_id)

    def test_new_cart_after_conversion(self, services):
        old = services.carts.add_item(1, 1, 1)
        services.orders.convert_to_order(1, {"latitude": 52.0, "longitude": 21.0}, "pm_1")

        new = services.carts.add_item(1, 2, 1)

        assert new["cart_id"] != old["cart_id"]
        assert [i["product_id"] for i in new["items"]] == [2]


class TestConcurrentAdds:
    THREADS = 8

    @pytest.fixture
    def session_factory(self, tmp_path):
        # plik zamiast :memory:, kazdy watek dostaje wlasne polaczenie
        engine = create_engine(
            f"sqlite:///{tmp_path / 'carts.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        try:
            yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        finally:
            engine.dispose()

    def test_parallel_increments_are_not_lost(self, session_factory, catalog, lock_service, monkeypatch):
        patient_hold = lock_service.hold
        monkeypatch.setattr(lock_service, "hold", lambda key: patient_hold(key, wait=10.0))

        def add_one(_):
            session = session_factory()
            try:
                return CartService(session, catalog, lock_service).add_item(1, 1, 1)
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=self.THREADS) as pool:
            results = list(pool.map(add_one, range(self.THREADS)))

        session = session_factory()
        try:
            cart = CartService(session, catalog, lock_service).get_cart(1)
        finally:
            session.close()

        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == self.THREADS
        assert cart["version"] == self.THREADS + 1
        # kazdy watek widzial inny stan posredni, zaden inkrement nie zginal
        seen = sorted(r["items"][0]["quantity"] for r in results)
        assert seen == list(range(1, self.THREADS + 1))
        assert all(i["quantity"] > 0 for r in results for i in r["items"])
        assert lock_service.held == {}

    def test_duplicate_line_insert_is_retried_as_increment(self, services, monkeypatch):
        services.carts.add_item(1, 1, 2)
        real_lookup = services.carts.repo.get_cart_item
        lookups = []

        def stale_first_lookup(cart_id, product_id):
            # pierwszy odczyt nie widzi linii, INSERT trafia w u_cart_product
            lookups.append(product_id)
            if len(lookups) == 1:
                return None
            return real_lookup(cart_id, product_id)

        monkeypatch.setattr(services.carts.repo, "get_cart_item", stale_first_lookup)

        cart = services.carts.add_item(1, 1, 3)

        assert len(lookups) == 2
        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 5
