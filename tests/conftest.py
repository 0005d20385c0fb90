"""
Pytest configuration and fixtures for fulfillment service tests.
"""
import os
import threading
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

# Set test environment before importing fulfillment modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["WEBHOOK_URLS"] = ""
os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["STORE_DELIVERY_REQUIRES_APPROVAL"] = "true"
os.environ["CART_LOCK_WAIT_SECONDS"] = "0.2"

from fulfillment.data.database import Base, SessionLocal, engine  # noqa: E402
import fulfillment.data.models  # noqa: E402,F401
from fulfillment.data.models.carrier import CarrierProfileModel  # noqa: E402
from fulfillment.domain.errors import CatalogUnavailable  # noqa: E402
from fulfillment.domain.permissions import Principal  # noqa: E402
from fulfillment.repos.carrier_repo import CarrierRepo  # noqa: E402
from fulfillment.services.cart_service import CartService  # noqa: E402
from fulfillment.services.checkout_service import CheckoutValidator  # noqa: E402
from fulfillment.services.confirmation_service import ConfirmationService  # noqa: E402
from fulfillment.services.delivery_service import DeliveryService  # noqa: E402
from fulfillment.services.lock_service import LockService  # noqa: E402
from fulfillment.services.notification_service import NotificationService  # noqa: E402
from fulfillment.services.order_service import OrderService  # noqa: E402
from fulfillment.services.tracking_service import TrackingService  # noqa: E402
from fulfillment.services.webhook_service import WebhookService  # noqa: E402
from fulfillment.utils.tokens import TokenGenerator  # noqa: E402

STORE_ID = 10
STORE_OWNER_ID = 500
STORE_LOCATION = (52.2297, 21.0122)
CUSTOMER_LOCATION = (52.2400, 21.0300)
LISTENER_URL = "http://listener.test/hooks"


class FakeCatalog:
    """Catalog-service w pamieci, te same ksztalty odpowiedzi co CatalogClient."""

    def __init__(self):
        self.products = {}
        self.stores = {}
        self.unavailable = False

    def add_product(self, product_id, price="10.00", stock=10, in_stock=True, store_id=STORE_ID):
        self.products[product_id] = {
            "id": product_id,
            "name": f"Product {product_id}",
            "price": price,
            "stock_quantity": stock,
            "in_stock": in_stock,
            "store_id": store_id,
        }

    def add_store(self, store_id=STORE_ID, owner_id=STORE_OWNER_ID, location=STORE_LOCATION, is_active=True):
        self.stores[store_id] = {
            "id": store_id,
            "owner_id": owner_id,
            "latitude": location[0],
            "longitude": location[1],
            "is_active": is_active,
        }

    def fetch_product(self, product_id):
        if self.unavailable:
            raise CatalogUnavailable(details={"path": f"/products/{product_id}"})
        product = self.products.get(product_id)
        return dict(product) if product else None

    def fetch_store(self, store_id):
        if self.unavailable:
            raise CatalogUnavailable(details={"path": f"/stores/{store_id}"})
        store = self.stores.get(store_id)
        return dict(store) if store else None


class MemoryLockService(LockService):
    """LockService z hold() bez zmian, acquire/release na slowniku zamiast Redisa."""

    def __init__(self):
        self.held = {}
        self._mutex = threading.Lock()

    def acquire(self, key, token, ttl):
        # SET NX: sprawdzenie i zapis atomowo, jak w Redisie
        with self._mutex:
            if key in self.held:
                return False
            self.held[key] = token
            return True

    def release(self, key, token):
        with self._mutex:
            if self.held.get(key) == token:
                del self.held[key]
                return True
            return False


class SequentialTokens(TokenGenerator):
    """Przewidywalne tokeny, kody sledzenia nadal pasuja do formatu."""

    def __init__(self):
        self.counter = 0

    def generate(self, namespace):
        self.counter += 1
        if namespace == "tracking":
            return f"TSP{self.counter:016X}"
        if namespace == "order":
            return f"ORD{self.counter:012X}"
        return f"confirmation-token-{self.counter:04d}"


class FrozenClock:
    def __init__(self, now=None):
        self.now = now or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDispatch:
    def __init__(self):
        self.calls = []

    def __call__(self, url, event):
        self.calls.append((url, event))

    @property
    def kinds(self):
        return [event["eventKind"] for _, event in self.calls]


@pytest.fixture
def db():
    """Swieza baza SQLite w pamieci dla kazdego testu."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def catalog() -> FakeCatalog:
    catalog = FakeCatalog()
    catalog.add_store()
    catalog.add_product(1, price="10.00", stock=10)
    catalog.add_product(2, price="4.50", stock=3)
    return catalog


@pytest.fixture
def lock_service() -> MemoryLockService:
    return MemoryLockService()


@pytest.fixture
def dispatch() -> RecordingDispatch:
    return RecordingDispatch()


@pytest.fixture
def webhooks(dispatch) -> WebhookService:
    return WebhookService(listeners=[LISTENER_URL], dispatch=dispatch)


@pytest.fixture
def notifications() -> MagicMock:
    return MagicMock(spec=NotificationService)


@pytest.fixture
def tokens() -> SequentialTokens:
    return SequentialTokens()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def services(db, catalog, lock_service, webhooks, notifications, tokens, clock):
    """Caly graf serwisow na jednej sesji, tak jak w jednym requescie."""
    carts = CartService(db, catalog, lock_service)
    validator = CheckoutValidator(db, catalog)
    orders = OrderService(db, validator, lock_service, webhooks, notifications, tokens)
    tracking = TrackingService(db, tokens)
    deliveries = DeliveryService(db, catalog, orders, tracking, webhooks, notifications)
    confirmations = ConfirmationService(db, deliveries, webhooks, notifications, tokens, clock=clock)
    return SimpleNamespace(
        carts=carts,
        validator=validator,
        orders=orders,
        tracking=tracking,
        deliveries=deliveries,
        confirmations=confirmations,
    )


@pytest.fixture
def add_carrier(db):
    def _add(user_id, kind="DRIVER", verification_status="APPROVED", is_commission_current=True):
        CarrierRepo(db).create_profile(
            CarrierProfileModel(
                user_id=user_id,
                kind=kind,
                verification_status=verification_status,
                is_commission_current=is_commission_current,
                vehicle_ref=f"WX{user_id:05d}",
            )
        )
        return user_id

    return _add


def principal(user_id, role="CUSTOMER") -> Principal:
    return Principal.from_role(user_id, role)


ADDRESS = {"latitude": CUSTOMER_LOCATION[0], "longitude": CUSTOMER_LOCATION[1], "address": "Prosta 1", "city": "Warszawa"}


@pytest.fixture
def place_order(services):
    """Koszyk -> zamowienie dla klienta, zwraca widok zamowienia."""

    def _place(owner_id=1, items=((1, 2),)):
        for product_id, quantity in items:
            services.carts.add_item(owner_id, product_id, quantity)
        return services.orders.convert_to_order(owner_id, ADDRESS, "pm_card_visa")

    return _place


@pytest.fixture
def store_delivery(services, place_order):
    """Zamowienie + dostawa ze sklepu w stanie CREATED."""

    def _create(owner_id=1):
        order = place_order(owner_id)
        return services.deliveries.create_store_purchase_delivery(
            customer_id=owner_id,
            order_id=order["id"],
            store_id=STORE_ID,
            customer_coordinates=CUSTOMER_LOCATION,
        )

    return _create


@pytest.fixture
def delivered_store_delivery(services, store_delivery, add_carrier):
    """Dostawa ze sklepu doprowadzona do DELIVERED przez zatwierdzonego kierowce."""

    def _create(owner_id=1, driver_id=900):
        created = store_delivery(owner_id)
        delivery_id = created["delivery_request"]["id"]
        add_carrier(driver_id)
        driver = principal(driver_id, "DRIVER")
        services.deliveries.assign_carrier(delivery_id, driver)
        services.deliveries.start_transit(delivery_id, driver)
        services.deliveries.mark_delivered(delivery_id, driver)
        return created

    return _create

