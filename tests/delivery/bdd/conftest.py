"""Shared BDD fixtures and step definitions for the delivery domain."""

import pytest
from delivery.order.queries import get_order
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then


@pytest.fixture()
def error():
    """Container for a captured domain rejection."""
    return {"exc": None}


@pytest.fixture()
def attempt(error):
    """Run an action, capturing a domain rejection instead of raising it."""

    def _attempt(action, *args, **kwargs):
        try:
            return action(*args, **kwargs)
        except ValidationError as exc:
            error["exc"] = exc
            return None

    return _attempt


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a venue delivering within {radius:g} km"), target_fixture="venue_id")
def venue_delivering_within(make_venue, radius):
    return make_venue(delivery_radius_km=radius)


@given("an on-duty driver nearby", target_fixture="driver_id")
def on_duty_driver(make_driver):
    return make_driver()


@given("a pending order", target_fixture="order_id")
def pending_order(make_order, venue_id):
    return make_order(venue_id=venue_id)


@given("a paid order", target_fixture="order_id")
def paid_order(make_order, pay, venue_id):
    order_id = make_order(venue_id=venue_id)
    pay(order_id)
    return order_id


@given("a ready order", target_fixture="order_id")
def a_ready_order(ready_order, venue_id):
    return ready_order(venue_id=venue_id)


@given("another ready order", target_fixture="other_order_id")
def another_ready_order(ready_order, venue_id):
    return ready_order(venue_id=venue_id)


@given("a delivered order", target_fixture="order_id")
def delivered_order(ready_order, dispatch, move, venue_id, driver_id):
    order_id = ready_order(venue_id=venue_id)
    dispatch(order_id, driver_id)
    move(order_id, "in_transit", actor_role="driver", actor_id=driver_id)
    move(order_id, "delivered", actor_role="driver", actor_id=driver_id)
    return order_id


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order_id, status):
    assert get_order(order_id).delivery_status == status


@then(parsers.cfparse("the request is rejected with {error_name}"))
def request_rejected_with(error, error_name):
    assert error["exc"] is not None, f"Expected {error_name} but nothing was raised"
    assert type(error["exc"]).__name__ == error_name


@then("the order is not cancellable")
def order_not_cancellable(order_id):
    assert get_order(order_id).is_cancellable is False
