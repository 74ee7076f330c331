import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def delivery_bed():
    from delivery.domain import delivery

    bed = DomainFixture(delivery)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(delivery_bed):
    with delivery_bed.domain_context():
        yield


# ---------------------------------------------------------------------------
# Shared builders
# ---------------------------------------------------------------------------
VENUE_LAT = 40.7128
VENUE_LON = -74.0060
OWNER_ID = "owner-001"
CUSTOMER_ID = "cust-001"
DEFAULT_ITEMS = [{"menu_item_id": "pizza-1", "name": "Margherita", "quantity": 1, "unit_price": 10.0}]

# Base 5, 1/km up to 5 km, 2 extra under 15, 10% service, 1 handling
STANDARD_SCHEDULE = {
    "base": 5,
    "distance_rates": [{"min_distance": 0, "max_distance": 5, "rate_per_km": 1}],
    "small_order_threshold": 15,
    "small_order_fee": 2,
    "service_fee_percentage": 10,
    "handling_fee": 1,
}


def km_north(km: float) -> tuple[float, float]:
    """A point ``km`` due north of the venue."""
    return VENUE_LAT + km / 111.195, VENUE_LON


@pytest.fixture()
def make_venue():
    import json

    from delivery.venue.registration import RegisterVenue
    from protean import current_domain

    def _make(delivery_radius_km=10.0, fee_schedule=None, owner_id=OWNER_ID):
        return current_domain.process(
            RegisterVenue(
                name="Pizza Palace",
                owner_id=owner_id,
                latitude=VENUE_LAT,
                longitude=VENUE_LON,
                delivery_radius_km=delivery_radius_km,
                fee_schedule=json.dumps(fee_schedule or STANDARD_SCHEDULE),
            ),
            asynchronous=False,
        )

    return _make


@pytest.fixture()
def make_order(make_venue):
    import json

    from delivery.concurrency import process_exclusively
    from delivery.order.creation import CreateOrder

    def _make(venue_id=None, distance_km=3.0, items=None, customer_id=CUSTOMER_ID, **extra):
        venue_id = venue_id or make_venue()
        latitude, longitude = km_north(distance_km)
        return process_exclusively(
            CreateOrder(
                customer_id=customer_id,
                venue_id=venue_id,
                items=json.dumps(DEFAULT_ITEMS if items is None else items),
                dropoff_latitude=latitude,
                dropoff_longitude=longitude,
                payment_method=extra.pop("payment_method", "credit_card"),
                **extra,
            )
        )

    return _make


@pytest.fixture()
def make_driver():
    from delivery.driver.management import ChangeDriverStatus, RegisterDriver, SetDriverDutyStatus
    from protean import current_domain

    def _make(name="Dana", distance_km=1.0, on_duty=True):
        latitude, longitude = km_north(distance_km)
        driver_id = current_domain.process(
            RegisterDriver(name=name, latitude=latitude, longitude=longitude),
            asynchronous=False,
        )
        current_domain.process(ChangeDriverStatus(driver_id=driver_id, status="active"), asynchronous=False)
        if on_duty:
            current_domain.process(SetDriverDutyStatus(driver_id=driver_id, on_duty=True), asynchronous=False)
        return driver_id

    return _make


@pytest.fixture()
def pay():
    """Pay for an order and confirm it through the gateway webhook."""
    from delivery.order.locking import process_order_command
    from delivery.order.order import Order
    from delivery.order.payment import PayOrder, ProcessPaymentWebhook
    from protean import current_domain

    def _pay(order_id, customer_id=CUSTOMER_ID):
        order = current_domain.repository_for(Order).get(order_id)
        reference = process_order_command(
            PayOrder(
                order_id=order_id,
                customer_id=customer_id,
                amount=order.total_amount,
                payment_method="credit_card",
            )
        )
        process_order_command(
            ProcessPaymentWebhook(
                order_id=order_id,
                event_type="payment_intent.succeeded",
                payment_reference=reference,
            )
        )
        return reference

    return _pay


@pytest.fixture()
def move():
    """Request a status change as the given actor."""
    from delivery.order.locking import process_order_command
    from delivery.order.status import UpdateOrderStatus

    def _move(order_id, status, actor_role="venue", actor_id=OWNER_ID, **extra):
        return process_order_command(
            UpdateOrderStatus(order_id=order_id, status=status, actor_role=actor_role, actor_id=actor_id, **extra)
        )

    return _move


@pytest.fixture()
def ready_order(make_order, pay, move):
    """A paid order the kitchen has finished, waiting for a driver."""

    def _make(**kwargs):
        order_id = make_order(**kwargs)
        pay(order_id)
        move(order_id, "ready")
        return order_id

    return _make


@pytest.fixture()
def dispatch():
    from delivery.order.assignment import AssignDriver
    from delivery.order.locking import process_order_command

    def _dispatch(order_id, driver_id, actor_role="venue", actor_id=OWNER_ID):
        return process_order_command(
            AssignDriver(order_id=order_id, driver_id=driver_id, actor_role=actor_role, actor_id=actor_id)
        )

    return _dispatch
