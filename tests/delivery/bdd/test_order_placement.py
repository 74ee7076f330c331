"""BDD tests for order placement against the venue's delivery area."""

from delivery.order.queries import get_order, list_orders
from delivery.venue.registration import SetVenueAcceptingOrders
from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when

scenarios("features/order_placement.feature")


@given("the venue has stopped accepting orders")
def venue_paused(venue_id):
    current_domain.process(
        SetVenueAcceptingOrders(venue_id=venue_id, actor_id="owner-001", accepting_orders=False),
        asynchronous=False,
    )


@when(parsers.cfparse("the customer orders for a drop-off {distance:g} km away"), target_fixture="order_id")
def customer_orders(make_order, venue_id, distance, attempt):
    return attempt(make_order, venue_id=venue_id, distance_km=distance)


@then("the order is placed")
def order_placed(order_id, error):
    assert error["exc"] is None
    assert order_id is not None


@then(parsers.cfparse("the order total is {amount:g}"))
def order_total_is(order_id, amount):
    assert get_order(order_id).total_amount == amount


@then(parsers.cfparse("the order is rejected with {error_name}"))
def order_rejected_with(order_id, error, error_name):
    assert order_id is None
    assert type(error["exc"]).__name__ == error_name


@then("the customer has no orders")
def customer_has_no_orders():
    assert list_orders(customer_id="cust-001") == []
