import pytest
from delivery.api import (
    driver_router,
    geocoding_router,
    order_router,
    payment_router,
    register_error_handlers,
    venue_router,
)
from fastapi import FastAPI
from fastapi.testclient import TestClient

CUSTOMER = {"X-Actor-Role": "customer", "X-Actor-Id": "cust-001"}
SIGNED = {"X-Gateway-Signature": "test-signature"}

VENUE_LOCATION = {"latitude": 40.7128, "longitude": -74.0060}
ORDER_ITEMS = [{"menu_item_id": "pizza-1", "name": "Margherita", "quantity": 1, "unit_price": 10.0}]
FEE_SCHEDULE = {
    "base": 5,
    "distance_rates": [{"min_distance": 0, "max_distance": 5, "rate_per_km": 1}],
    "small_order_threshold": 15,
    "small_order_fee": 2,
    "service_fee_percentage": 10,
    "handling_fee": 1,
}


def north_of_venue(km):
    return {"latitude": VENUE_LOCATION["latitude"] + km / 111.195, "longitude": VENUE_LOCATION["longitude"]}


@pytest.fixture()
def client():
    app = FastAPI()
    for router in (order_router, payment_router, geocoding_router, venue_router, driver_router):
        app.include_router(router)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def venue_id(client):
    response = client.post(
        "/venues",
        json={
            "name": "Pizza Palace",
            "owner_id": "owner-001",
            "location": VENUE_LOCATION,
            "delivery_radius_km": 10.0,
            "fee_schedule": FEE_SCHEDULE,
        },
    )
    assert response.status_code == 201
    return response.json()["venue_id"]


@pytest.fixture()
def place(client, venue_id):
    """Place an order over HTTP and return the response."""

    def _place(distance_km=3.0, **extra):
        body = {
            "customer_id": "cust-001",
            "venue_id": venue_id,
            "items": ORDER_ITEMS,
            "dropoff": north_of_venue(distance_km),
            "payment_method": "credit_card",
        }
        body.update(extra)
        return client.post("/orders", json=body)

    return _place


@pytest.fixture()
def paid_order(client, place):
    """An order paid and confirmed by the gateway, now in preparation."""

    def _make():
        order = place().json()
        payment = client.post(
            f"/orders/{order['id']}/payments",
            json={"amount": order["total_amount"], "payment_method": "credit_card"},
            headers=CUSTOMER,
        ).json()
        client.post(
            "/payments/webhook",
            json={
                "order_id": order["id"],
                "event_type": "payment_intent.succeeded",
                "payment_reference": payment["payment_reference"],
            },
            headers=SIGNED,
        )
        return order["id"]

    return _make


@pytest.fixture()
def on_duty_driver(client):
    def _make(name="Dana", distance_km=1.0):
        driver_id = client.post("/drivers", json={"name": name, "location": north_of_venue(distance_km)}).json()[
            "driver_id"
        ]
        client.put(f"/drivers/{driver_id}/status", json={"status": "active"})
        client.put(f"/drivers/{driver_id}/duty", json={"on_duty": True})
        return driver_id

    return _make
