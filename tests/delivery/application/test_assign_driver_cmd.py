"""Application tests for driver dispatch and driver exclusivity."""

import threading

import pytest
from delivery.domain import delivery
from delivery.driver.driver import Driver
from delivery.errors import DriverUnavailable, OrderNotReady, Unauthorized
from delivery.order.order import Order
from protean import current_domain


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _driver(driver_id):
    return current_domain.repository_for(Driver).get(driver_id)


class TestAssignDriver:
    def test_venue_dispatches_a_driver(self, ready_order, make_driver, dispatch):
        order_id = ready_order()
        driver_id = make_driver()
        dispatch(order_id, driver_id)

        order = _order(order_id)
        assert order.delivery_status == "dispatched"
        assert order.driver_id == driver_id
        driver = _driver(driver_id)
        assert driver.current_order_id == order_id
        assert driver.is_available is False
        assert driver.total_deliveries == 1

    def test_system_may_dispatch(self, ready_order, make_driver, dispatch):
        order_id = ready_order()
        dispatch(order_id, make_driver(), actor_role="system", actor_id=None)
        assert _order(order_id).delivery_status == "dispatched"

    def test_order_must_be_ready(self, make_order, pay, make_driver, dispatch):
        order_id = make_order()
        pay(order_id)
        with pytest.raises(OrderNotReady):
            dispatch(order_id, make_driver())

    def test_other_venue_rejected(self, ready_order, make_driver, dispatch):
        with pytest.raises(Unauthorized):
            dispatch(ready_order(), make_driver(), actor_id="owner-999")

    def test_customer_cannot_dispatch(self, ready_order, make_driver, dispatch):
        with pytest.raises(Unauthorized):
            dispatch(ready_order(), make_driver(), actor_role="customer", actor_id="cust-001")

    def test_off_duty_driver_rejected(self, ready_order, make_driver, dispatch):
        order_id = ready_order()
        with pytest.raises(DriverUnavailable):
            dispatch(order_id, make_driver(on_duty=False))
        assert _order(order_id).delivery_status == "ready"


class TestDriverExclusivity:
    def test_busy_driver_cannot_take_a_second_order(self, make_venue, ready_order, make_driver, dispatch):
        venue_id = make_venue()
        first = ready_order(venue_id=venue_id)
        second = ready_order(venue_id=venue_id)
        driver_id = make_driver()

        dispatch(first, driver_id)
        with pytest.raises(DriverUnavailable):
            dispatch(second, driver_id)

        assert _order(second).delivery_status == "ready"
        assert _order(second).driver_id is None
        assert _driver(driver_id).current_order_id == first

    def test_driver_free_again_after_delivery(self, make_venue, ready_order, make_driver, dispatch, move):
        venue_id = make_venue()
        first = ready_order(venue_id=venue_id)
        second = ready_order(venue_id=venue_id)
        driver_id = make_driver()

        dispatch(first, driver_id)
        move(first, "in_transit", actor_role="driver", actor_id=driver_id)
        move(first, "delivered", actor_role="driver", actor_id=driver_id)
        dispatch(second, driver_id)

        assert _driver(driver_id).current_order_id == second

    def test_concurrent_dispatch_gives_the_driver_one_order(self, make_venue, ready_order, make_driver, dispatch):
        venue_id = make_venue()
        orders = [ready_order(venue_id=venue_id) for _ in range(4)]
        driver_id = make_driver()
        outcomes = []
        start = threading.Barrier(len(orders))

        def attempt(order_id):
            with delivery.domain_context():
                start.wait()
                try:
                    dispatch(order_id, driver_id)
                    outcomes.append("assigned")
                except DriverUnavailable:
                    outcomes.append("unavailable")

        threads = [threading.Thread(target=attempt, args=(order_id,)) for order_id in orders]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(outcomes) == ["assigned", "unavailable", "unavailable", "unavailable"]
        dispatched = [order_id for order_id in orders if _order(order_id).delivery_status == "dispatched"]
        assert dispatched == [_driver(driver_id).current_order_id]
