"""
API tests: routers, error translation and camelCase payloads.
"""
import pytest
from fastapi.testclient import TestClient

from fulfillment.api import deps
from fulfillment.data.database import get_db
from fulfillment.main import app

CUSTOMER = {"X-User-Id": "1", "X-User-Role": "CUSTOMER"}
OTHER_CUSTOMER = {"X-User-Id": "2", "X-User-Role": "CUSTOMER"}
DRIVER = {"X-User-Id": "900", "X-User-Role": "DRIVER"}
STORE_OWNER = {"X-User-Id": "500", "X-User-Role": "STORE_OWNER"}
ADMIN = {"X-User-Id": "99", "X-User-Role": "ADMIN"}

CHECKOUT = {
    "deliveryAddress": {"latitude": 52.24, "longitude": 21.03, "address": "Prosta 1", "city": "Warszawa"},
    "paymentMethodId": "pm_card_visa",
}


@pytest.fixture
def client(db, catalog, lock_service, webhooks, notifications, tokens):
    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[deps.get_catalog_client] = lambda: catalog
    app.dependency_overrides[deps.get_lock_service] = lambda: lock_service
    app.dependency_overrides[deps.get_webhook_service] = lambda: webhooks
    app.dependency_overrides[deps.get_notification_service] = lambda: notifications
    app.dependency_overrides[deps.get_token_generator] = lambda: tokens
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def place_order(client):
    client.post("/cart/items", json={"productId": 1, "quantity": 2}, headers=CUSTOMER)
    resp = client.post("/cart/checkout", json=CHECKOUT, headers=CUSTOMER)
    assert resp.status_code == 201
    return resp.json()


def create_store_delivery(client):
    order = place_order(client)
    resp = client.post(
        "/delivery/store-purchase",
        json={"orderId": order["id"], "storeId": 10, "customerCoordinates": {"latitude": 52.24, "longitude": 21.03}},
        headers=CUSTOMER,
    )
    assert resp.status_code == 201
    return resp.json()


class TestHealthAndAuth:
    def test_health(self, client):
        resp = client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_missing_user_header(self, client):
        resp = client.get("/cart")

        assert resp.status_code == 403
        assert resp.json()["error"] == "NotAuthorized"

    def test_role_without_permission(self, client):
        resp = client.post("/cart/items", json={"productId": 1, "quantity": 1}, headers=DRIVER)

        assert resp.status_code == 403


class TestCartApi:
    def test_add_item_returns_camel_case_cart(self, client):
        resp = client.post("/cart/items", json={"productId": 1, "quantity": 2}, headers=CUSTOMER)

        assert resp.status_code == 200
        body = resp.json()
        assert body["ownerId"] == 1
        assert body["items"][0]["productId"] == 1
        assert float(body["subtotal"]) == 20.0

    def test_missing_field_is_400(self, client):
        resp = client.post("/cart/items", json={"quantity": 1}, headers=CUSTOMER)

        assert resp.status_code == 400
        assert resp.json()["error"] == "ValidationError"

    def test_out_of_stock(self, client):
        resp = client.post("/cart/items", json={"productId": 2, "quantity": 50}, headers=CUSTOMER)

        assert resp.status_code == 400
        assert resp.json()["error"] == "OutOfStock"

    def test_update_to_zero_returns_null(self, client):
        cart = client.post("/cart/items", json={"productId": 1, "quantity": 2}, headers=CUSTOMER).json()
        item_id = cart["items"][0]["itemId"]

        resp = client.patch(f"/cart/items/{item_id}", json={"quantity": 0}, headers=CUSTOMER)

        assert resp.status_code == 200
        assert resp.json() is None

    def test_unknown_item(self, client):
        resp = client.delete("/cart/items/999", headers=CUSTOMER)

        assert resp.status_code == 404
        assert resp.json()["error"] == "CartItemNotFound"

    def test_summary_and_clear(self, client):
        client.post("/cart/items", json={"productId": 1, "quantity": 2}, headers=CUSTOMER)

        assert client.get("/cart/summary", headers=CUSTOMER).json()["totalItems"] == 2
        assert client.delete("/cart", headers=CUSTOMER).json()["items"] == []

    def test_validate_reports_issues(self, client, catalog):
        client.post("/cart/items", json={"productId": 1, "quantity": 2}, headers=CUSTOMER)
        catalog.products[1]["price"] = "11.00"

        resp = client.post("/cart/validate", headers=CUSTOMER)

        assert resp.status_code == 200
        assert resp.json()["valid"] is False
        assert resp.json()["issues"][0]["code"] == "PRICE_CHANGED"


class TestCheckoutApi:
    def test_checkout_creates_order(self, client):
        order = place_order(client)

        assert order["orderNumber"].startswith("ORD")
        assert order["deliveryAddress"]["city"] == "Warszawa"

    def test_failed_checkout_is_itemized(self, client, catalog):
        client.post("/cart/items", json={"productId": 1, "quantity": 2}, headers=CUSTOMER)
        catalog.products[1]["stock_quantity"] = 1

        resp = client.post("/cart/checkout", json=CHECKOUT, headers=CUSTOMER)

        assert resp.status_code == 400
        assert resp.json()["error"] == "CheckoutFailed"
        assert resp.json()["details"]["issues"][0]["code"] == "OUT_OF_STOCK"

    def test_replay_is_409(self, client):
        place_order(client)

        resp = client.post("/cart/checkout", json=CHECKOUT, headers=CUSTOMER)

        assert resp.status_code == 409
        assert resp.json()["error"] == "CartAlreadyConverted"

    def test_order_is_private(self, client):
        order = place_order(client)

        assert client.get(f"/orders/{order['id']}", headers=CUSTOMER).status_code == 200
        assert client.get(f"/orders/{order['id']}", headers=OTHER_CUSTOMER).status_code == 403
        assert client.get("/orders/4242", headers=CUSTOMER).status_code == 404


class TestDeliveryApi:
    def test_estimate(self, client):
        resp = client.post(
            "/delivery/estimate",
            json={"storeId": 10, "customerLatitude": 52.24, "customerLongitude": 21.03, "items": [{"quantity": 2}]},
        )

        assert resp.status_code == 200
        assert set(resp.json()) == {"distanceKm", "etaMinutes", "fee"}

    def test_estimate_missing_fields(self, client):
        resp = client.post("/delivery/estimate", json={"storeId": 10})

        assert resp.status_code == 400

    def test_store_purchase_and_tracking(self, client):
        created = create_store_delivery(client)

        assert set(created) == {"order", "deliveryRequest", "trackingCode"}
        resp = client.get(f"/delivery/track/{created['trackingCode']}")
        assert resp.status_code == 200
        assert resp.json()["status"] == "CREATED"
        assert "id" not in resp.json()

    def test_unknown_tracking_code(self, client):
        resp = client.get("/delivery/track/TSP0000000000000000")

        assert resp.status_code == 404
        assert resp.json()["error"] == "TrackingNotFound"

    def test_user_to_user(self, client):
        resp = client.post(
            "/delivery/user-to-user",
            json={"pickup": {"latitude": 52.22, "longitude": 21.01}, "dropoff": {"latitude": 52.25, "longitude": 21.0}},
            headers=CUSTOMER,
        )

        assert resp.status_code == 201
        assert resp.json()["deliveryRequest"]["kind"] == "USER_TO_USER"

    def test_commission_overdue_driver(self, client, add_carrier):
        created = create_store_delivery(client)
        add_carrier(900, is_commission_current=False)

        resp = client.post(f"/delivery/{created['deliveryRequest']['id']}/assign", headers=DRIVER)

        assert resp.status_code == 403
        assert resp.json()["error"] == "CommissionOverdue"

    def test_full_lifecycle_with_confirmation(self, client, add_carrier, notifications):
        created = create_store_delivery(client)
        delivery_id = created["deliveryRequest"]["id"]
        add_carrier(900)

        assert client.post(f"/delivery/{delivery_id}/assign", headers=DRIVER).json()["status"] == "ASSIGNED"
        assert client.post(f"/delivery/{delivery_id}/pickup", headers=DRIVER).json()["status"] == "IN_TRANSIT"
        delivered = client.post(f"/delivery/{delivery_id}/deliver", headers=DRIVER).json()

        assert delivered["deliveryRequest"]["status"] == "DELIVERED"
        assert delivered["confirmation"]["status"] == "ISSUED"
        assert "token" not in delivered["confirmation"]

        token = notifications.notify.call_args_list[-1].args[4]["token"]
        assert client.get(f"/delivery/confirmation/{token}").json()["status"] == "ISSUED"

        resp = client.post("/delivery/confirm", json={"confirmationToken": token}, headers=STORE_OWNER)
        assert resp.status_code == 200
        assert resp.json()["deliveryRequest"]["status"] == "CONFIRMED"

        replay = client.post("/delivery/confirm", json={"confirmationToken": token}, headers=STORE_OWNER)
        assert replay.status_code == 409
        assert replay.json()["error"] == "ConfirmationAlreadyConfirmed"

    def test_confirm_unknown_token(self, client):
        resp = client.post("/delivery/confirm", json={"confirmationToken": "nope"}, headers=STORE_OWNER)

        assert resp.status_code == 404
        assert resp.json()["error"] == "TokenNotFound"

    def test_customer_cannot_confirm(self, client):
        resp = client.post("/delivery/confirm", json={"confirmationToken": "nope"}, headers=CUSTOMER)

        assert resp.status_code == 403

    def test_cancel(self, client):
        created = create_store_delivery(client)

        resp = client.post(
            f"/delivery/{created['deliveryRequest']['id']}/cancel",
            json={"reason": "changed mind"},
            headers=CUSTOMER,
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "CANCELLED"
        assert resp.json()["cancelReason"] == "changed mind"

    def test_invalid_transition_is_409(self, client):
        created = create_store_delivery(client)

        resp = client.post(f"/delivery/{created['deliveryRequest']['id']}/pickup", headers=DRIVER)

        assert resp.status_code == 409
        assert resp.json()["error"] == "InvalidStateTransition"


class TestDeliveryReadApi:
    def test_owner_reads_delivery(self, client):
        created = create_store_delivery(client)

        resp = client.get(f"/delivery/{created['deliveryRequest']['id']}", headers=CUSTOMER)

        assert resp.status_code == 200
        assert resp.json()["trackingCode"] == created["trackingCode"]

    def test_store_owner_reads_delivery(self, client):
        created = create_store_delivery(client)

        resp = client.get(f"/delivery/{created['deliveryRequest']['id']}", headers=STORE_OWNER)

        assert resp.status_code == 200

    def test_stranger_cannot_read_delivery(self, client):
        created = create_store_delivery(client)

        resp = client.get(f"/delivery/{created['deliveryRequest']['id']}", headers=OTHER_CUSTOMER)

        assert resp.status_code == 403
        assert resp.json()["error"] == "NotAuthorized"
        assert "trackingCode" not in resp.text


class TestAdminDeliveryApi:
    def test_statistics(self, client):
        create_store_delivery(client)

        resp = client.get("/delivery/statistics", params={"storeId": 10}, headers=ADMIN)

        assert resp.status_code == 200
        body = resp.json()
        assert body["totalDeliveries"] == 1
        assert body["pendingDeliveries"] == 1
        assert body["byStatus"] == {"CREATED": 1}
        assert body["completionRate"] == 0.0

    def test_statistics_date_window(self, client):
        create_store_delivery(client)

        resp = client.get("/delivery/statistics", params={"startDate": "2999-01-01T00:00:00Z"}, headers=ADMIN)

        assert resp.status_code == 200
        assert resp.json()["totalDeliveries"] == 0

    def test_statistics_is_admin_only(self, client):
        resp = client.get("/delivery/statistics", headers=CUSTOMER)

        assert resp.status_code == 403

    def test_send_reminders(self, client):
        resp = client.post("/delivery/send-reminders", headers=ADMIN)

        assert resp.status_code == 200
        assert resp.json() == {"sent": 0}

    def test_send_reminders_is_admin_only(self, client):
        resp = client.post("/delivery/send-reminders", headers=STORE_OWNER)

        assert resp.status_code == 403
